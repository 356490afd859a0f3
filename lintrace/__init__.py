"""
Lineage-tracing barcode count processing.

Filters sequencing noise, normalizes across samples, reconciles technical
replicates and computes composition and diversity statistics for
barcode-by-sample count matrices.
"""

__version__ = "0.1.0"
