"""
Noise-floor filtering of barcodes in a count matrix.
"""

import itertools
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from lintrace.domain.models import CountMatrix, ThresholdConfig
from lintrace.infrastructure.logger import Logger


THRESHOLD_MODES = ("absolute", "relative")


class Thresholder:
    """Removes barcodes that fail a noise-floor test"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def threshold(
        self,
        matrix: CountMatrix,
        mode: str = "absolute",
        value: float = 1.0,
        min_samples: int = 1,
    ) -> CountMatrix:
        """
        Keep barcodes passing the noise floor in at least ``min_samples`` samples.

        In ``absolute`` mode a count passes if ``count >= value``. In
        ``relative`` mode it passes if ``count / sample_total >= value``; a
        sample with zero total never passes. Rows left with all-zero counts are
        dropped as well. The input matrix is not modified.

        Args:
            matrix: Input count matrix
            mode: "absolute" or "relative"
            value: Count or proportion threshold
            min_samples: Number of samples a barcode must pass in

        Returns:
            CountMatrix: Filtered matrix, possibly with no barcodes left
        """
        self._validate(mode, value, min_samples)

        passes = self._pass_mask(matrix, mode, value)
        n_passing = passes.sum(axis=1)
        filtered = matrix.subset_barcodes(n_passing >= min_samples).drop_empty_barcodes()
        self.logger.log_step(
            "Thresholding",
            f"mode={mode}, value={value}, min_samples={min_samples}: "
            f"kept {filtered.n_barcodes} of {matrix.n_barcodes} barcodes",
        )
        if filtered.is_empty:
            self.logger.log_warning("Thresholding removed every barcode")
        for sample in filtered.degenerate_samples():
            self.logger.log_diagnostic(
                "DegenerateSample", sample, "no reads left after thresholding"
            )
        return filtered

    def threshold_config(self, matrix: CountMatrix, config: ThresholdConfig) -> CountMatrix:
        """Apply a ThresholdConfig operating point"""
        return self.threshold(matrix, config.mode, config.value, config.min_samples)

    def sweep(
        self,
        matrix: CountMatrix,
        values: Iterable[float],
        modes: Iterable[str] = ("absolute",),
        min_samples_options: Iterable[int] = (1,),
    ) -> pd.DataFrame:
        """
        Evaluate a grid of threshold parameters against the same matrix.

        Args:
            matrix: Input count matrix
            values: Threshold values to try
            modes: Threshold modes to try
            min_samples_options: min_samples values to try

        Returns:
            pd.DataFrame: One row per combination with retained barcodes and reads
        """
        total_reads = float(matrix.counts.to_numpy().sum())
        rows = []
        for mode, value, min_samples in itertools.product(
            list(modes), list(values), list(min_samples_options)
        ):
            self._validate(mode, value, min_samples)
            passes = self._pass_mask(matrix, mode, value)
            keep = (passes.sum(axis=1) >= min_samples) & (
                matrix.counts.to_numpy() > 0
            ).any(axis=1)
            kept_reads = float(matrix.counts.to_numpy()[keep].sum())
            rows.append(
                {
                    "mode": mode,
                    "value": value,
                    "min_samples": min_samples,
                    "barcodes_retained": int(keep.sum()),
                    "fraction_barcodes_retained": (
                        keep.sum() / matrix.n_barcodes if matrix.n_barcodes else np.nan
                    ),
                    "fraction_reads_retained": (
                        kept_reads / total_reads if total_reads > 0 else np.nan
                    ),
                }
            )

        self.logger.log_step("Threshold sweep", f"Evaluated {len(rows)} operating points")
        return pd.DataFrame(rows)

    def _pass_mask(self, matrix: CountMatrix, mode: str, value: float) -> np.ndarray:
        """Boolean (barcodes, samples) array of counts passing the floor"""
        values = matrix.counts.to_numpy(dtype=float)
        if mode == "absolute":
            return values >= value

        totals = values.sum(axis=0)
        with np.errstate(divide="ignore", invalid="ignore"):
            proportions = np.where(totals > 0, values / totals, np.nan)
            # NaN proportions (zero-total samples) compare False
            return proportions >= value

    def _validate(self, mode: str, value: float, min_samples: int) -> None:
        if mode not in THRESHOLD_MODES:
            raise ValueError(f"Unknown threshold mode '{mode}', expected one of {THRESHOLD_MODES}")
        if value < 0:
            raise ValueError(f"Threshold value must be non-negative, got {value}")
        if mode == "relative" and value > 1:
            raise ValueError(f"Relative threshold must be a proportion, got {value}")
        if min_samples < 1:
            raise ValueError(f"min_samples must be at least 1, got {min_samples}")
