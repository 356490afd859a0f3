"""
Infrastructure package for the barcode count pipeline.

This package contains infrastructure components including data access, logging,
command line parsing, and other cross-cutting concerns.
"""
