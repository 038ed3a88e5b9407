import os
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from minigwas.errors import AlignmentError, DosageError, SchemaError
from minigwas.log import logger


DEFAULT_ID_COL = "IID"
VALID_DOSAGES = (0, 1, 2)
MARKER_COLUMNS = ["chrom", "snp", "pos", "ref", "alt", "ref_freq"]

# upper/lower case spellings seen in PLINK-style frequency files
MARKER_ALIASES: Dict[str, str] = {
    "chr": "chrom",
    "chrom": "chrom",
    "chromosome": "chrom",
    "snp": "snp",
    "rs": "snp",
    "rsid": "snp",
    "marker": "snp",
    "bp": "pos",
    "ps": "pos",
    "pos": "pos",
    "position": "pos",
    "a1": "ref",
    "ref": "ref",
    "ref_allele": "ref",
    "a2": "alt",
    "alt": "alt",
    "alt_allele": "alt",
    "freq": "ref_freq",
    "af": "ref_freq",
    "a1_freq": "ref_freq",
    "ref_freq": "ref_freq",
}


# ------------------------
# Helpers
# ------------------------

def _infer_sep_from_ext(path: str) -> str:
    lower = (path or "").lower()
    if lower.endswith(".csv"):
        return ","
    # default treat .tsv/.txt as tab
    return "\t"


def _normalize_sep(sep: Optional[str], path: Optional[str]) -> str:
    if sep in (None, "auto"):
        return _infer_sep_from_ext(path or "")
    if sep.lower() in {"csv", ","}:
        return ","
    if sep.lower() in {"tsv", "tab", "\t"}:
        return "\t"
    if sep.lower() in {"whitespace", "space", " "}:
        return r"\s+"
    # allow custom single-char
    return sep


def _require_columns(df: pd.DataFrame, required: Sequence[str], source: str):
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaError(
            f"The {source} is missing the following required columns: {missing}. "
            f"Available columns: {list(df.columns)}."
        )


def _require_unique_ids(df: pd.DataFrame, id_col: str, source: str):
    dup = df[id_col][df[id_col].duplicated()]
    if not dup.empty:
        raise SchemaError(f"The {source} has duplicated '{id_col}' values: {sorted(set(dup))[:10]}")


# ------------------------
# Readers / writers
# ------------------------

def read_table(path: str, sep: Optional[str] = None, header: bool = True, encoding: str = "utf-8") -> pd.DataFrame:
    use_sep = _normalize_sep(sep, path)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Input not found: {path}")
    try:
        df = pd.read_csv(path, sep=use_sep, header=0 if header else None, encoding=encoding,
                         engine="python" if use_sep == r"\s+" else "c")
    except Exception as e:
        raise ValueError(f"Failed to read table: {path} ({e})") from e
    return df


def write_table(df: pd.DataFrame, path: str, sep: Optional[str] = None, header: bool = True, index: bool = False,
                encoding: str = "utf-8"):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    use_sep = _normalize_sep(sep, path)
    df.to_csv(path, sep=use_sep, header=header, index=index, encoding=encoding)


def read_phenotypes(path: str, id_col: str = DEFAULT_ID_COL, columns: Optional[List[str]] = None,
                    sep: Optional[str] = None) -> pd.DataFrame:
    """
    Read a phenotype table (one row per participant).

    :param path: Path to phenotype file
    :param id_col: Participant identifier column
    :param columns: Phenotype columns that must be present
    :param sep: Field separator, inferred from the extension by default
    """
    logger.info(f"Loading phenotype file: {path}")
    df = read_table(path, sep=sep)
    _require_columns(df, [id_col] + list(columns or []), "phenotype file")
    df[id_col] = df[id_col].astype(str)
    _require_unique_ids(df, id_col, "phenotype file")
    logger.info(f"Loaded {len(df)} participants with {df.shape[1] - 1} phenotype columns.")
    return df


def marker_columns(genotypes: pd.DataFrame, id_col: str = DEFAULT_ID_COL) -> List[str]:
    return [c for c in genotypes.columns if c != id_col]


def check_dosages(genotypes: pd.DataFrame, markers: Sequence[str]) -> pd.DataFrame:
    """Coerce marker columns to integers, raising DosageError on anything outside {0, 1, 2}."""
    out = genotypes.copy()
    bad = []
    for marker in markers:
        values = pd.to_numeric(out[marker], errors="coerce")
        if values.isna().any() or not values.isin(VALID_DOSAGES).all():
            bad.append(marker)
            continue
        out[marker] = values.astype(np.int64)
    if bad:
        raise DosageError(
            f"Genotype values must be dosages in {set(VALID_DOSAGES)}; invalid markers: {bad[:10]}"
            + (f" (+{len(bad) - 10} more)" if len(bad) > 10 else "")
        )
    return out


def read_genotypes(path: str, id_col: str = DEFAULT_ID_COL, sep: Optional[str] = None) -> pd.DataFrame:
    """
    Read a genotype matrix: one identifier column plus one dosage column per marker.

    :param path: Path to genotype file
    :param id_col: Participant identifier column
    :param sep: Field separator, inferred from the extension by default
    """
    logger.info(f"Loading genotype file: {path}")
    df = read_table(path, sep=sep)
    _require_columns(df, [id_col], "genotype file")
    df[id_col] = df[id_col].astype(str)
    _require_unique_ids(df, id_col, "genotype file")
    markers = marker_columns(df, id_col)
    if not markers:
        raise SchemaError(f"Genotype file has no marker columns besides '{id_col}': {path}")
    df = check_dosages(df, markers)
    logger.info(f"Loaded {len(df)} participants with {len(markers)} markers.")
    return df


def normalize_marker_columns(df: pd.DataFrame) -> pd.DataFrame:
    rename = {}
    for col in df.columns:
        canonical = MARKER_ALIASES.get(str(col).strip().lower())
        if canonical is not None and canonical not in rename.values():
            rename[col] = canonical
    return df.rename(columns=rename)


def read_marker_freq(path: str, sep: Optional[str] = None) -> pd.DataFrame:
    """
    Read marker metadata (chromosome, id, position, alleles, reference-allele frequency).

    :param path: Path to marker frequency file
    :param sep: Field separator, inferred from the extension by default
    """
    logger.info(f"Loading marker frequency file: {path}")
    df = normalize_marker_columns(read_table(path, sep=sep))
    _require_columns(df, MARKER_COLUMNS, "marker frequency file")
    df = df[MARKER_COLUMNS + [c for c in df.columns if c not in MARKER_COLUMNS]].copy()
    df["chrom"] = df["chrom"].astype(str)
    df["snp"] = df["snp"].astype(str)
    df["ref_freq"] = pd.to_numeric(df["ref_freq"], errors="coerce")
    out_of_range = df[~df["ref_freq"].between(0, 1)]
    if not out_of_range.empty:
        raise SchemaError(
            f"Reference allele frequencies must lie in [0, 1]; offending markers: {list(out_of_range['snp'][:10])}"
        )
    logger.info(f"Loaded metadata for {len(df)} markers.")
    return df


# ------------------------
# merge
# ------------------------

def merge_datasets(phenotypes: pd.DataFrame, genotypes: pd.DataFrame, id_col: str = DEFAULT_ID_COL) -> pd.DataFrame:
    """Inner-join phenotypes and genotypes on the participant id, keeping phenotype order."""
    _require_columns(phenotypes, [id_col], "phenotype table")
    _require_columns(genotypes, [id_col], "genotype table")
    pheno = phenotypes.assign(**{id_col: phenotypes[id_col].astype(str)})
    geno = genotypes.assign(**{id_col: genotypes[id_col].astype(str)})
    overlap = [c for c in pheno.columns if c in geno.columns and c != id_col]
    if overlap:
        raise SchemaError(f"Phenotype and genotype tables share non-id columns: {overlap}")

    merged = pd.merge(pheno, geno, on=id_col, how="inner", validate="one_to_one")
    if merged.empty:
        raise AlignmentError(f"No participant ids in common between phenotype and genotype tables ('{id_col}').")

    dropped_pheno = len(pheno) - len(merged)
    dropped_geno = len(geno) - len(merged)
    if dropped_pheno or dropped_geno:
        logger.info(
            f"Merged {len(merged)} participants; dropped {dropped_pheno} phenotype-only "
            f"and {dropped_geno} genotype-only ids."
        )
    else:
        logger.info(f"Merged {len(merged)} participants.")
    return merged


def read_summary(path: str, sep: Optional[str] = None) -> pd.DataFrame:
    """Read a summary table written by ``minigwas scan``."""
    logger.info(f"Loading summary statistics: {path}")
    df = normalize_marker_columns(read_table(path, sep=sep))
    _require_columns(df, ["chrom", "snp", "pos", "pvalue"], "summary file")
    df["chrom"] = df["chrom"].astype(str)
    logger.info(f"Loaded {len(df)} markers.")
    return df
