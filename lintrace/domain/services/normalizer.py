"""
Depth normalization of barcode count matrices.
"""

from typing import Optional

import numpy as np
import pandas as pd

from lintrace.domain.models import CountMatrix
from lintrace.infrastructure.logger import Logger


CPM_SCALE = 1_000_000
NORMALIZATION_METHODS = ("CPM", "proportion", "rarefy")


class Normalizer:
    """Rescales raw counts to a depth-independent unit"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def normalize(
        self,
        matrix: CountMatrix,
        method: str = "CPM",
        depth: Optional[int] = None,
        seed: int = 0,
    ) -> CountMatrix:
        """
        Normalize every sample column for sequencing depth.

        Args:
            matrix: Input count matrix
            method: "CPM" (counts per million), "proportion" (relative
                abundance) or "rarefy" (subsample to a common depth)
            depth: Target depth for rarefying, defaults to the smallest
                nonzero sample total
            seed: Random seed for rarefying

        Returns:
            CountMatrix: New normalized matrix over the same barcodes and samples
        """
        if method == "CPM":
            normalized = self._scale(matrix, CPM_SCALE)
        elif method == "proportion":
            normalized = self._scale(matrix, 1.0)
        elif method == "rarefy":
            normalized = self.rarefy(matrix, depth=depth, seed=seed)
        else:
            raise ValueError(
                f"Unknown normalization method '{method}', expected one of {NORMALIZATION_METHODS}"
            )

        self.logger.log_matrix_shape(f"Normalized matrix ({method})", normalized.shape)
        return normalized

    def _scale(self, matrix: CountMatrix, scale: float) -> CountMatrix:
        """Divide each column by its total and multiply by ``scale``"""
        values = matrix.counts.to_numpy(dtype=float)
        totals = values.sum(axis=0)

        scaled = np.zeros_like(values)
        nonzero = totals > 0
        scaled[:, nonzero] = values[:, nonzero] / totals[nonzero] * scale

        for sample in np.asarray(matrix.sample_names)[~nonzero]:
            self.logger.log_diagnostic(
                "DegenerateSample", str(sample), "zero total count, normalized to 0"
            )

        return matrix.with_counts(
            pd.DataFrame(scaled, index=matrix.counts.index, columns=matrix.counts.columns)
        )

    def rarefy(
        self, matrix: CountMatrix, depth: Optional[int] = None, seed: int = 0
    ) -> CountMatrix:
        """
        Subsample every sample without replacement to the same read depth.

        Samples shallower than ``depth`` are kept unchanged and reported.

        Args:
            matrix: Integer count matrix
            depth: Target depth, defaults to the smallest nonzero sample total
            seed: Seed for the random generator

        Returns:
            CountMatrix: Rarefied integer matrix
        """
        if not matrix.is_integer:
            raise ValueError("Rarefying requires an integer count matrix")

        totals = matrix.sample_totals()
        if depth is None:
            nonzero_totals = totals[totals > 0]
            if nonzero_totals.empty:
                self.logger.log_warning("Every sample has zero reads, nothing to rarefy")
                return matrix.with_counts(matrix.counts)
            depth = int(nonzero_totals.min())
        self.logger.log_threshold("Rarefaction depth", depth)

        rng = np.random.default_rng(seed)
        rarefied = matrix.counts.copy()
        for sample in matrix.sample_names:
            column = matrix.counts[sample].to_numpy(dtype=np.int64)
            if column.sum() < depth:
                self.logger.log_warning(
                    f"Sample {sample} has {column.sum()} reads, below rarefaction depth {depth}; kept as is"
                )
                continue
            rarefied[sample] = rng.multivariate_hypergeometric(column, depth)

        return matrix.with_counts(rarefied)
