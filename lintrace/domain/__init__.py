"""
This package contains the domain layer for the barcode count pipeline.

The domain layer holds the count matrix model and the numerical transformations.
"""

from .exceptions import (
    CollapsedMatrixError,
    EmptyMatrixError,
    LintraceError,
    SchemaMismatchError,
)
from .models import (
    AnalysisConfig,
    AnalysisResult,
    CountMatrix,
    Diagnostic,
    DiagnosticKind,
    PercentileBarcodes,
    ProcessingConfig,
    ReplicateCorrelation,
    ThresholdConfig,
)

__all__ = [
    "AnalysisConfig",
    "AnalysisResult",
    "CollapsedMatrixError",
    "CountMatrix",
    "Diagnostic",
    "DiagnosticKind",
    "EmptyMatrixError",
    "LintraceError",
    "PercentileBarcodes",
    "ProcessingConfig",
    "ReplicateCorrelation",
    "SchemaMismatchError",
    "ThresholdConfig",
]
