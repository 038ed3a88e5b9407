from typing import List, Optional

import pandas as pd
from scipy import stats as sstats

from minigwas.errors import SchemaError
from minigwas.log import logger


# ------------------------
# stat
# ------------------------

def summarize_series(s: pd.Series) -> dict:
    s_num = pd.to_numeric(s, errors="coerce")
    n = int(s_num.shape[0])
    n_miss = int(s_num.isna().sum())
    n_notna = n - n_miss
    desc = s_num.describe(percentiles=[0.25, 0.5, 0.75])
    mean = float(desc["mean"]) if n_notna else float("nan")
    std = float(desc["std"]) if n_notna > 1 else float("nan")
    skew = float(s_num.skew()) if n_notna > 2 else float("nan")
    kurt = float(s_num.kurt()) if n_notna > 3 else float("nan")

    # Shapiro-Wilk: practical range 3 <= n <= 5000 to avoid warnings
    s_clean = s_num.dropna()
    if 3 <= len(s_clean) <= 5000 and s_clean.nunique() > 1:
        sh_stat, sh_p = sstats.shapiro(s_clean.values)
        shapiro_stat, shapiro_p = float(sh_stat), float(sh_p)
    else:
        shapiro_stat = shapiro_p = float("nan")

    return {
        "count": n,
        "non_missing": n_notna,
        "missing": n_miss,
        "missing_rate": (n_miss / n) if n > 0 else float("nan"),
        "mean": mean,
        "std": std,
        "min": float(desc.get("min", float("nan"))),
        "q1": float(desc.get("25%", float("nan"))),
        "median": float(desc.get("50%", float("nan"))),
        "q3": float(desc.get("75%", float("nan"))),
        "max": float(desc.get("max", float("nan"))),
        "unique": int(s_num.nunique(dropna=True)),
        "skew": skew,
        "kurtosis": kurt,
        "shapiro_stat": shapiro_stat,
        "shapiro_p": shapiro_p,
    }


def summarize_phenotypes(df: pd.DataFrame, columns: Optional[List[str]] = None, id_col: str = "IID") -> pd.DataFrame:
    """One row of descriptive statistics per phenotype column."""
    columns = columns or [c for c in df.columns if c != id_col]
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaError(f"Phenotype columns not found: {missing}")
    rows = [{"trait": col, **summarize_series(df[col])} for col in columns]
    return pd.DataFrame(rows)


def case_control_counts(df: pd.DataFrame, label_col: str) -> pd.Series:
    """Number of controls (0) and cases (1) in a binary label column."""
    if label_col not in df.columns:
        raise SchemaError(f"Label column '{label_col}' not found")
    labels = pd.to_numeric(df[label_col], errors="coerce")
    invalid = labels[~labels.isin([0, 1])]
    if not invalid.empty:
        raise SchemaError(
            f"Label column '{label_col}' must hold 0/1 values; found {sorted(set(df[label_col][invalid.index].astype(str)))[:5]}"
        )
    counts = labels.astype(int).value_counts().reindex([0, 1], fill_value=0)
    counts.index = ["controls", "cases"]
    logger.info(f"{label_col}: {counts['cases']} cases, {counts['controls']} controls.")
    return counts
