"""
Business logic services package for the barcode count pipeline.
"""

from .differential_abundance import DifferentialAbundanceTester
from .diversity_calculator import DiversityCalculator
from .dominance_analyzer import DominanceAnalyzer
from .normalizer import Normalizer
from .replicate_analyzer import (
    ReplicateCollapser,
    ReplicateCorrelator,
    resolve_groups,
    strip_suffix,
    suffix_pattern,
)
from .thresholder import Thresholder

__all__ = [
    "DifferentialAbundanceTester",
    "DiversityCalculator",
    "DominanceAnalyzer",
    "Normalizer",
    "ReplicateCollapser",
    "ReplicateCorrelator",
    "Thresholder",
    "resolve_groups",
    "strip_suffix",
    "suffix_pattern",
]
