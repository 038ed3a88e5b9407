"""Exceptions raised while loading, aligning and joining GWAS tables.

All of them derive from ``ValueError`` so callers that only guard against
bad input keep working.
"""


class GWASDataError(ValueError):
    """Base class for invalid GWAS input data."""


class SchemaError(GWASDataError):
    """A required column is missing or holds values of the wrong kind."""


class DosageError(SchemaError):
    """A genotype cell is not an additive dosage in {0, 1, 2}."""


class AlignmentError(GWASDataError):
    """Outcome and genotype rows disagree in count or participant ids."""


class JoinKeyError(GWASDataError):
    """Marker ids are duplicated, so the summary join is ambiguous."""
