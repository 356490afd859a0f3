"""
This package contains the application layer for the barcode count pipeline.

The application layer is responsible for orchestrating loading, analysis and saving.
"""

from .barcode_processing_service import BarcodeProcessingService

__all__ = ["BarcodeProcessingService"]
