"""
Data access package for the barcode count pipeline.

This package contains data loading and saving components: building count matrices
from per-sample count files and a metadata table, and exporting derived tables.
"""

from .data_loader import CountDataLoader
from .data_saver import CountDataSaver

__all__ = ["CountDataLoader", "CountDataSaver"]
