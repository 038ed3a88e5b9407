from typing import List, NamedTuple, Optional, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm

from minigwas.data import DEFAULT_ID_COL, MARKER_COLUMNS, marker_columns
from minigwas.errors import AlignmentError, JoinKeyError, SchemaError
from minigwas.log import logger


# conventional genome-wide threshold; used to annotate plots, never to filter
GENOME_WIDE_SIGNIFICANCE = 5e-8

RESULT_COLUMNS = ["beta", "se", "tstat", "pvalue"]


class RegressionResult(NamedTuple):
    """Dosage coefficient of a single-marker OLS fit."""
    beta: float
    se: float
    tstat: float
    pvalue: float

    @classmethod
    def nan(cls) -> "RegressionResult":
        return cls(np.nan, np.nan, np.nan, np.nan)

    @property
    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self)))


def neg_log10(pvalues):
    p = np.asarray(pvalues, dtype=np.float64)
    with np.errstate(divide="ignore"):
        return -np.log10(p)


def fit_ols(outcome, dosage) -> RegressionResult:
    """
    Fit ``outcome ~ 1 + dosage`` by ordinary least squares.

    A dosage vector without variance cannot be estimated; the all-NaN result
    is returned instead of raising so callers can keep scanning.

    :param outcome: Outcome values, one per participant
    :param dosage: Dosage values aligned with ``outcome``
    """
    y = np.asarray(outcome, dtype=np.float64)
    x = np.asarray(dosage, dtype=np.float64)
    if y.shape != x.shape:
        raise AlignmentError(f"Outcome has {y.shape[0]} values but dosage has {x.shape[0]}.")
    if x.size == 0 or np.ptp(x) == 0:
        return RegressionResult.nan()

    # explicit intercept column; sm.add_constant skips it for constant input
    design = np.column_stack([np.ones_like(x), x])
    fit = sm.OLS(y, design).fit()
    return RegressionResult(
        beta=float(fit.params[1]),
        se=float(fit.bse[1]),
        tstat=float(fit.tvalues[1]),
        pvalue=float(fit.pvalues[1]),
    )


def _has_ids(index: pd.Index) -> bool:
    return not isinstance(index, pd.RangeIndex)


def _check_alignment(outcome, genotypes: pd.DataFrame):
    if len(outcome) != len(genotypes):
        raise AlignmentError(
            f"Outcome has {len(outcome)} rows but the genotype table has {len(genotypes)}; "
            "merge phenotypes and genotypes on the participant id first."
        )
    if isinstance(outcome, pd.Series) and _has_ids(outcome.index) and _has_ids(genotypes.index):
        out_ids = outcome.index.astype(str)
        geno_ids = genotypes.index.astype(str)
        if not out_ids.equals(geno_ids):
            if set(out_ids) == set(geno_ids):
                raise AlignmentError("Outcome and genotype rows hold the same participants in a different order.")
            mismatched = sorted(set(out_ids) ^ set(geno_ids))
            raise AlignmentError(f"Outcome and genotype participant ids differ: {mismatched[:10]}")


def _coerce_outcome(outcome) -> np.ndarray:
    values = pd.to_numeric(pd.Series(np.asarray(outcome)), errors="coerce").astype(np.float64)
    if not np.isfinite(values).all():
        raise SchemaError(f"Outcome has {int((~np.isfinite(values)).sum())} missing or non-numeric values.")
    return values.to_numpy()


def scan(outcome, genotypes: pd.DataFrame, markers: Optional[Sequence[str]] = None,
         id_col: str = DEFAULT_ID_COL) -> pd.DataFrame:
    """
    Run one simple linear regression per marker.

    :param outcome: Outcome vector (Series indexed by participant id, or array) of length N
    :param genotypes: N-row table with one dosage column per marker, aligned with ``outcome``
    :param markers: Markers to scan, in output order; default is every genotype column except ``id_col``
    :param id_col: Participant id column; when present it is used as the row index for the id check
    :return: DataFrame with columns snp, beta, se, tstat, pvalue, one row per requested marker
    """
    if id_col in genotypes.columns:
        genotypes = genotypes.set_index(id_col)
    markers = list(marker_columns(genotypes, id_col) if markers is None else markers)
    missing = [m for m in markers if m not in genotypes.columns]
    if missing:
        raise SchemaError(f"Markers not found in the genotype table: {missing[:10]}")
    _check_alignment(outcome, genotypes)
    y = _coerce_outcome(outcome)

    logger.info(f"Scanning {len(markers)} markers across {len(y)} participants...")
    rows = []
    n_degenerate = 0
    for marker in markers:
        result = fit_ols(y, genotypes[marker])
        if not result.is_finite:
            n_degenerate += 1
            logger.warning(f"Marker {marker}: non-finite regression output (e.g. constant dosage); kept as-is.")
        rows.append({"snp": marker, **result._asdict()})

    results = pd.DataFrame(rows, columns=["snp"] + RESULT_COLUMNS)
    logger.info(f"Scan finished: {len(results)} markers, {n_degenerate} non-estimable.")
    return results


def build_summary(metadata: pd.DataFrame, results: pd.DataFrame) -> pd.DataFrame:
    """
    Join marker metadata with association results on ``snp``.

    Markers missing from either side are dropped; rows follow the metadata order.
    """
    for name, df in (("metadata", metadata), ("results", results)):
        if "snp" not in df.columns:
            raise SchemaError(f"Marker {name} table has no 'snp' column.")
        dup = df["snp"][df["snp"].duplicated()]
        if not dup.empty:
            raise JoinKeyError(f"Duplicated marker ids in {name}: {sorted(set(dup.astype(str)))[:10]}")

    meta = metadata.assign(snp=metadata["snp"].astype(str))
    res = results.assign(snp=results["snp"].astype(str))
    summary = pd.merge(meta, res, on="snp", how="inner")

    only_meta = len(meta) - len(summary)
    only_res = len(res) - len(summary)
    if only_meta or only_res:
        logger.info(f"Summary join dropped {only_meta} metadata-only and {only_res} result-only markers.")

    front = [c for c in MARKER_COLUMNS if c in summary.columns]
    ordered = front + [c for c in summary.columns if c not in front and c not in RESULT_COLUMNS] + RESULT_COLUMNS
    return summary[[c for c in ordered if c in summary.columns]]


def _rank(summary: pd.DataFrame) -> pd.DataFrame:
    if "pvalue" not in summary.columns:
        raise SchemaError("Summary table has no 'pvalue' column.")
    # mergesort is stable: ties keep input order
    return summary.sort_values("pvalue", kind="mergesort", na_position="last")


def top_hit(summary: pd.DataFrame) -> pd.Series:
    if summary.empty:
        raise ValueError("Cannot select a top hit from an empty summary table.")
    return _rank(summary).iloc[0]


def top_hits(summary: pd.DataFrame, n: int = 5) -> pd.DataFrame:
    return _rank(summary).head(n).reset_index(drop=True)


def run_association(merged: pd.DataFrame, metadata: pd.DataFrame, outcome: str,
                    markers: Optional[Sequence[str]] = None, id_col: str = DEFAULT_ID_COL) -> pd.DataFrame:
    """
    Scan a merged phenotype/genotype table and return the summary table.

    :param merged: Output of ``merge_datasets``
    :param metadata: Marker metadata from ``read_marker_freq``
    :param outcome: Name of the outcome column in ``merged``
    :param markers: Markers to scan; default is every metadata marker present in ``merged``
    :param id_col: Participant identifier column
    """
    if outcome not in merged.columns:
        raise SchemaError(f"Outcome column '{outcome}' not found in merged table.")
    if markers is None:
        markers = [m for m in metadata["snp"].astype(str) if m in merged.columns]
        absent = len(metadata) - len(markers)
        if absent:
            logger.info(f"{absent} metadata markers have no genotype column and are skipped.")
    if not markers:
        raise SchemaError("No markers to scan.")

    indexed = merged.set_index(id_col) if id_col in merged.columns else merged
    results = scan(indexed[outcome], indexed, markers, id_col=id_col)
    return build_summary(metadata, results)


def scan_region(merged: pd.DataFrame, metadata: pd.DataFrame, outcome: str, chrom,
                id_col: str = DEFAULT_ID_COL) -> pd.DataFrame:
    """Summary table for the markers of a single chromosome."""
    region = metadata[metadata["chrom"].astype(str) == str(chrom)]
    markers: List[str] = [m for m in region["snp"].astype(str) if m in merged.columns]
    if not markers:
        raise SchemaError(f"No genotyped markers on chromosome {chrom}.")
    logger.info(f"Chromosome {chrom}: {len(markers)} markers.")
    return run_association(merged, region, outcome, markers=markers, id_col=id_col)
