"""minigwas package

Core modules:
- minigwas.data: phenotype/genotype/marker table loading and merging
- minigwas.assoc: per-marker association scan, summary join and top hits
- minigwas.viz: Manhattan, QQ and phenotype plots
- minigwas.phe: phenotype summaries
- minigwas.sim: simulated teaching datasets
- minigwas.minigwas: CLI entry point (main)
"""

__all__ = [
    "data",
    "assoc",
    "viz",
    "phe",
    "sim",
    "minigwas",
]
