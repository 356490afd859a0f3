"""
Error types raised by the barcode count processing pipeline.

Structural problems (schema mismatches, empty matrices) are raised as
exceptions. Data-quality conditions such as degenerate samples or groups
without replicates are not errors; they are reported as diagnostics.
"""


class LintraceError(Exception):
    """Base class for all pipeline errors"""


class SchemaMismatchError(LintraceError, ValueError):
    """Sample metadata and count columns do not form a one-to-one mapping"""


class EmptyMatrixError(LintraceError, ValueError):
    """A count matrix has no barcodes left to analyze"""


class CollapsedMatrixError(LintraceError):
    """A per-replicate operation was requested on an already collapsed matrix"""
