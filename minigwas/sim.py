"""Simulated phenotype/genotype/marker tables for teaching runs.

Genotypes are additive dosages drawn from Binomial(2, ref_freq); the continuous
trait is the sum of the causal dosages times ``effect`` plus Gaussian noise and
the case/control label comes from a liability threshold on the standardized
trait.
"""
import os
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import norm

from minigwas.data import DEFAULT_ID_COL, write_table
from minigwas.log import logger


LABEL_COL = "case_control"
TRAIT_COL = "trait"
_BASES = np.array(list("ACGT"))


def simulate_dataset(
    n_samples: int = 500,
    n_markers: int = 40,
    chroms: Sequence[str] = ("11", "20"),
    causal: Optional[Sequence[str]] = None,
    effect: float = 0.5,
    noise_sd: float = 1.0,
    prevalence: float = 0.3,
    seed: int = 42,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Simulate a small GWAS dataset.

    :param n_samples: Number of participants
    :param n_markers: Number of markers, spread evenly over ``chroms``
    :param chroms: Chromosome labels
    :param causal: Marker ids carrying the effect; default is the first marker of the first chromosome
    :param effect: Additive effect per reference-allele copy on the continuous trait
    :param noise_sd: Standard deviation of the environmental noise
    :param prevalence: Fraction of cases
    :param seed: Random seed
    :return: (phenotypes, genotypes, marker metadata)
    """
    if n_samples < 3 or n_markers < 1:
        raise ValueError("Need at least 3 samples and 1 marker.")
    if not 0 < prevalence < 1:
        raise ValueError("prevalence must lie in (0, 1).")
    rng = np.random.default_rng(seed)

    chrom_of = np.array([str(chroms[i * len(chroms) // n_markers]) for i in range(n_markers)])
    snps = [f"rs{100001 + i}" for i in range(n_markers)]
    pos = np.empty(n_markers, dtype=np.int64)
    for chrom in dict.fromkeys(chrom_of):
        idx = np.flatnonzero(chrom_of == chrom)
        pos[idx] = np.sort(rng.choice(np.arange(1_000_000, 50_000_000, 100), size=idx.size, replace=False))
    ref_freq = np.round(rng.uniform(0.05, 0.95, size=n_markers), 4)
    alleles = np.array([rng.choice(_BASES, size=2, replace=False) for _ in range(n_markers)])

    dosages = rng.binomial(2, ref_freq, size=(n_samples, n_markers))
    ids = [f"IND{i:04d}" for i in range(1, n_samples + 1)]
    genotypes = pd.DataFrame(dosages, columns=snps)
    genotypes.insert(0, DEFAULT_ID_COL, ids)

    if causal is None:
        causal = [snps[0]]
    unknown = [c for c in causal if c not in snps]
    if unknown:
        raise ValueError(f"Causal markers not simulated: {unknown}")
    signal = np.zeros(n_samples)
    for snp in causal:
        signal += effect * genotypes[snp].to_numpy()
    trait = signal + rng.normal(0.0, noise_sd, size=n_samples)

    # liability threshold on the standardized trait
    liability = (trait - trait.mean()) / trait.std()
    label = (liability > norm.ppf(1 - prevalence)).astype(int)

    phenotypes = pd.DataFrame({DEFAULT_ID_COL: ids, LABEL_COL: label, TRAIT_COL: np.round(trait, 4)})
    metadata = pd.DataFrame({
        "chrom": chrom_of,
        "snp": snps,
        "pos": pos,
        "ref": alleles[:, 0],
        "alt": alleles[:, 1],
        "ref_freq": ref_freq,
    })
    logger.info(
        f"Simulated {n_samples} participants x {n_markers} markers on chromosomes {list(dict.fromkeys(chrom_of))}; "
        f"causal: {list(causal)}, {int(label.sum())} cases."
    )
    return phenotypes, genotypes, metadata


def write_dataset(out_dir: str, out_name: str, **kwargs) -> Dict[str, str]:
    """Simulate a dataset and write <out_name>.pheno.tsv, .geno.tsv and .freq.tsv."""
    phenotypes, genotypes, metadata = simulate_dataset(**kwargs)
    paths = {
        "phe": os.path.join(out_dir, f"{out_name}.pheno.tsv"),
        "geno": os.path.join(out_dir, f"{out_name}.geno.tsv"),
        "freq": os.path.join(out_dir, f"{out_name}.freq.tsv"),
    }
    write_table(phenotypes, paths["phe"])
    write_table(genotypes, paths["geno"])
    write_table(metadata, paths["freq"])
    for kind, path in paths.items():
        logger.info(f"Wrote {kind} table: {path}")
    return paths
