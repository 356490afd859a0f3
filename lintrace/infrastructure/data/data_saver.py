"""
Data saving functionality for the barcode count pipeline.
"""

import os
from typing import Dict, Optional

import pandas as pd

from lintrace.domain.models import AnalysisResult, CountMatrix, ProcessingConfig
from lintrace.infrastructure.logger import Logger


class CountDataSaver:
    """Responsible for saving processed matrices and derived tables"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def save_table(self, table: pd.DataFrame, file_path: str, index: bool = True) -> None:
        """
        Save a table to CSV, creating the parent directory if needed.

        Args:
            table: Table to save
            file_path: Output file path
            index: Whether to write the index
        """
        try:
            directory = os.path.dirname(file_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            table.to_csv(file_path, index=index)
            self.logger.log_save(file_path)
        except Exception as e:
            self.logger.log_error(e, f"Saving table to {file_path}")
            raise

    def save_matrix(self, matrix: CountMatrix, file_path: str) -> None:
        """Save a count matrix with barcodes as rows and samples as columns"""
        self.save_table(matrix.counts, file_path)

    def save_metadata(self, matrix: CountMatrix, file_path: str) -> None:
        """Save the sample metadata of a count matrix"""
        self.save_table(matrix.samples, file_path)

    def result_paths(self, config: ProcessingConfig) -> Dict[str, str]:
        """Output file for every table written by save_results"""
        prefix = os.path.join(config.out_dir, f"{config.run_name}_{config.analysis.name}")
        names = {
            "depth": "Depth_Summary",
            "filtered": "Filtered_Counts",
            "normalized": "Normalized_Counts",
            "collapsed": "Collapsed_Counts",
            "collapsed_metadata": "Collapsed_Metadata",
            "threshold_sweep": "Threshold_Sweep",
            "replicate_correlation": "Replicate_Correlation",
            "diversity": "Diversity",
            "dominant": "Dominant_Barcodes",
            "percentile": "Percentile_Barcodes",
            "percentile_summary": "Percentile_Summary",
            "differential_abundance": "Differential_Abundance",
            "diagnostics": "Diagnostics",
        }
        return {key: f"{prefix}_{name}.csv" for key, name in names.items()}

    def save_results(self, result: AnalysisResult, config: ProcessingConfig) -> Dict[str, str]:
        """
        Save every table of an analysis result.

        Args:
            result: Analysis result
            config: Processing configuration

        Returns:
            Dict[str, str]: Written file paths keyed by table name
        """
        paths = self.result_paths(config)
        written = {}
        try:
            depth = result.raw.depth_summary().join(
                result.filtered.depth_summary(), rsuffix="_filtered"
            )
            self.save_matrix(result.filtered, paths["filtered"])
            written["filtered"] = paths["filtered"]
            self.save_matrix(result.normalized, paths["normalized"])
            written["normalized"] = paths["normalized"]
            if result.collapsed is not None:
                self.save_matrix(result.collapsed, paths["collapsed"])
                written["collapsed"] = paths["collapsed"]
                self.save_metadata(result.collapsed, paths["collapsed_metadata"])
                written["collapsed_metadata"] = paths["collapsed_metadata"]

            tables = {
                "depth": (depth, True),
                "diversity": (result.diversity, True),
                "dominant": (result.dominant_table, False),
                "percentile": (result.percentile_barcodes.table, False),
                "percentile_summary": (result.percentile_barcodes.summary(), True),
                "diagnostics": (result.diagnostics_frame(), False),
            }
            if result.threshold_sweep is not None:
                tables["threshold_sweep"] = (result.threshold_sweep, False)
            if result.replicate_correlation is not None:
                tables["replicate_correlation"] = (
                    result.replicate_correlation.to_frame(config.analysis.correlation_threshold),
                    False,
                )
            if result.differential_abundance is not None:
                tables["differential_abundance"] = (result.differential_abundance, True)

            for key, (table, index) in tables.items():
                self.save_table(table, paths[key], index=index)
                written[key] = paths[key]

            self.logger.log_success(f"Saved {len(written)} tables to {config.out_dir}")
        except Exception as e:
            self.logger.log_error(e, "Saving results")
            raise

        return written
