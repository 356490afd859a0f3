"""
Data loading and initial validation for the barcode count pipeline.
"""

import os
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from lintrace.domain.exceptions import SchemaMismatchError
from lintrace.domain.models import SAMPLE_INDEX_NAME, CountMatrix, ProcessingConfig
from lintrace.infrastructure.logger import Logger


class CountDataLoader:
    """Builds CountMatrix objects from count files and a sample metadata table"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def read_table(self, file_path: str) -> pd.DataFrame:
        """
        Read a delimited table, choosing the separator from the file extension.

        Args:
            file_path: Path to a .csv, .tsv or .txt file

        Returns:
            pd.DataFrame: Parsed table

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"File not found: {file_path}")
        if file_path.endswith((".tsv", ".txt", ".tsv.gz", ".txt.gz")):
            return pd.read_csv(file_path, sep="\t")
        return pd.read_csv(file_path)

    def load_metadata(self, file_path: str, sample_column: str = "sample") -> pd.DataFrame:
        """
        Load the sample metadata table, one row per sample.

        Args:
            file_path: Metadata file
            sample_column: Column holding sample names

        Returns:
            pd.DataFrame: Metadata indexed by sample name
        """
        metadata = self.read_table(file_path)
        if sample_column not in metadata.columns:
            raise SchemaMismatchError(
                f"Metadata file {file_path} has no '{sample_column}' column"
            )

        names = metadata[sample_column].astype(str)
        duplicated = names[names.duplicated()].unique().tolist()
        if duplicated:
            raise SchemaMismatchError(f"Duplicate sample names in metadata: {duplicated}")

        metadata = metadata.drop(columns=[sample_column])
        metadata.index = pd.Index(names, name=SAMPLE_INDEX_NAME)
        self.logger.log_step("Metadata loaded", f"{len(metadata)} samples from {file_path}")
        return metadata

    def load_sample_counts(
        self, file_path: str, barcode_column: str = "barcode", count_column: str = "count"
    ) -> pd.Series:
        """
        Load one sample's barcode counts, summing duplicate barcode rows.

        Returns:
            pd.Series: Integer counts indexed by barcode
        """
        table = self.read_table(file_path)
        missing = [c for c in (barcode_column, count_column) if c not in table.columns]
        if missing:
            raise SchemaMismatchError(f"Count file {file_path} is missing columns {missing}")

        counts = pd.to_numeric(table[count_column], errors="coerce")
        if counts.isna().any():
            raise SchemaMismatchError(f"Count file {file_path} has non-numeric or missing counts")
        if (counts < 0).any():
            raise SchemaMismatchError(f"Count file {file_path} has negative counts")
        if (counts != counts.round()).any():
            raise SchemaMismatchError(f"Count file {file_path} has non-integer counts")

        series = counts.groupby(table[barcode_column].astype(str), sort=False).sum()
        return series.astype(np.int64)

    def load_library(
        self, file_path: str, barcode_column: str = "barcode", count_column: str = "count"
    ) -> List[str]:
        """
        Load the reference library barcode order.

        Barcodes are ranked by library count descending when a count column is
        present, otherwise by file order.

        Returns:
            List[str]: Barcodes in library rank order
        """
        library = self.read_table(file_path)
        if barcode_column not in library.columns:
            raise SchemaMismatchError(f"Library file {file_path} has no '{barcode_column}' column")
        if count_column in library.columns:
            library = library.sort_values(count_column, ascending=False, kind="stable")
        barcodes = library[barcode_column].astype(str).drop_duplicates().tolist()
        self.logger.log_step("Library loaded", f"{len(barcodes)} reference barcodes")
        return barcodes

    def resolve_count_files(
        self,
        metadata: pd.DataFrame,
        counts_dir: str,
        file_column: str = "files",
        file_pattern: str = "{sample}.csv",
    ) -> Dict[str, str]:
        """
        Map every sample to its count file.

        The ``file_column`` metadata column wins when present, otherwise the
        file name is built from ``file_pattern``.

        Raises:
            SchemaMismatchError: If any count file is missing
        """
        paths = {}
        for sample in metadata.index:
            if file_column in metadata.columns and pd.notna(metadata.at[sample, file_column]):
                file_name = str(metadata.at[sample, file_column])
            else:
                file_name = file_pattern.format(sample=sample)
            paths[sample] = os.path.join(counts_dir, file_name)

        missing = {sample: path for sample, path in paths.items() if not os.path.exists(path)}
        if missing:
            raise SchemaMismatchError(f"Missing count files for samples: {missing}")
        return paths

    def load(
        self,
        metadata_file: str,
        counts_dir: str,
        sample_column: str = "sample",
        file_column: str = "files",
        file_pattern: str = "{sample}.csv",
        barcode_column: str = "barcode",
        count_column: str = "count",
        library_file: Optional[str] = None,
    ) -> CountMatrix:
        """
        Build a CountMatrix from a metadata table and per-sample count files.

        Args:
            metadata_file: Sample metadata table
            counts_dir: Directory holding the per-sample count files
            sample_column: Metadata column with sample names
            file_column: Metadata column with count file names
            file_pattern: Count file naming convention when file_column is absent
            barcode_column: Barcode column in count files
            count_column: Count column in count files
            library_file: Optional reference library fixing barcode order

        Returns:
            CountMatrix: Integer count matrix
        """
        try:
            metadata = self.load_metadata(metadata_file, sample_column)
            paths = self.resolve_count_files(metadata, counts_dir, file_column, file_pattern)

            columns = {
                sample: self.load_sample_counts(path, barcode_column, count_column)
                for sample, path in paths.items()
            }
            counts = pd.concat(columns, axis=1, sort=False).fillna(0).astype(np.int64)
            counts = self._order_barcodes(counts, library_file, barcode_column, count_column)

            covariates = metadata.drop(columns=[file_column], errors="ignore")
            matrix = CountMatrix(counts, covariates)
        except Exception as e:
            self.logger.log_error(e, f"Loading counts described by {metadata_file}")
            raise

        self.logger.log_matrix_shape("Loaded matrix", matrix.shape)
        self.logger.log_success(f"Loaded {matrix.n_samples} samples from {counts_dir}")
        return matrix

    def load_matrix(
        self,
        matrix_file: str,
        metadata_file: str,
        sample_column: str = "sample",
        library_file: Optional[str] = None,
        barcode_column: str = "barcode",
        count_column: str = "count",
    ) -> CountMatrix:
        """
        Build a CountMatrix from a wide barcode-by-sample table.

        The first column of ``matrix_file`` holds barcode identifiers and every
        other column one sample.
        """
        try:
            table = self.read_table(matrix_file)
            counts = table.set_index(table.columns[0])
            counts.index = counts.index.astype(str)
            counts = counts.apply(pd.to_numeric, errors="coerce")
            if counts.isna().to_numpy().any():
                raise SchemaMismatchError(f"Matrix file {matrix_file} has non-numeric or missing counts")
            if (counts.round() == counts).all().all():
                counts = counts.round().astype(np.int64)

            counts = self._order_barcodes(counts, library_file, barcode_column, count_column)
            metadata = self.load_metadata(metadata_file, sample_column)
            matrix = CountMatrix(counts, metadata)
        except Exception as e:
            self.logger.log_error(e, f"Loading matrix from {matrix_file}")
            raise

        self.logger.log_matrix_shape("Loaded matrix", matrix.shape)
        return matrix

    def load_from_config(self, config: ProcessingConfig) -> CountMatrix:
        """Load the matrix described by a ProcessingConfig"""
        if config.matrix_file:
            return self.load_matrix(
                config.matrix_file,
                config.metadata_file,
                sample_column=config.sample_column,
                library_file=config.library_file,
                barcode_column=config.barcode_column,
                count_column=config.count_column,
            )
        if not config.counts_dir:
            raise ValueError("Either a counts directory or a matrix file is required")
        return self.load(
            config.metadata_file,
            config.counts_dir,
            sample_column=config.sample_column,
            file_column=config.file_column,
            file_pattern=config.file_pattern,
            barcode_column=config.barcode_column,
            count_column=config.count_column,
            library_file=config.library_file,
        )

    def _order_barcodes(
        self,
        counts: pd.DataFrame,
        library_file: Optional[str],
        barcode_column: str,
        count_column: str,
    ) -> pd.DataFrame:
        """Order rows by library rank, or by total reads when no library is given"""
        if library_file:
            library = self.load_library(library_file, barcode_column, count_column)
            in_library = [b for b in library if b in counts.index]
            extra = counts.index.difference(pd.Index(library), sort=False)
            if len(extra) > 0:
                self.logger.log_warning(
                    f"{len(extra)} barcodes are absent from the reference library; ranked after it"
                )
            extra_counts = counts.loc[extra]
            extra_order = extra_counts.sum(axis=1).sort_values(ascending=False, kind="stable").index
            return counts.loc[in_library + list(extra_order)]

        totals = counts.sum(axis=1)
        return counts.loc[totals.sort_values(ascending=False, kind="stable").index]
