"""
Dominant barcode and cumulative-percentile extraction per sample.
"""

from typing import Dict, Hashable, List, Optional, Set

import numpy as np
import pandas as pd

from lintrace.domain.exceptions import EmptyMatrixError
from lintrace.domain.models import CountMatrix, PercentileBarcodes
from lintrace.infrastructure.logger import Logger


# Cumulative proportions this close to the percentile count as reaching it
PERCENTILE_TOLERANCE = 1e-9


class DominanceAnalyzer:
    """Identifies barcodes that dominate each sample"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def get_dominant_barcodes(
        self, matrix: CountMatrix, proportion_threshold: float
    ) -> Dict[str, Set[Hashable]]:
        """
        Barcodes whose share of a sample's total count reaches a threshold.

        Proportions are taken from the matrix as given, normalized or not.

        Args:
            matrix: Count matrix
            proportion_threshold: Minimum proportion of the sample total

        Returns:
            Dict[str, Set[Hashable]]: Sample name to dominant barcode ids
        """
        table = self.dominant_table(matrix, proportion_threshold)
        return self.sets_from_table(table, matrix.sample_names)

    @staticmethod
    def sets_from_table(table: pd.DataFrame, samples: List[str]) -> Dict[str, Set[Hashable]]:
        """Group a dominant barcode table into one set per sample"""
        dominant = {sample: set() for sample in samples}
        for sample, barcode in zip(table["sample"], table["barcode"]):
            dominant[sample].add(barcode)
        return dominant

    def dominant_table(
        self, matrix: CountMatrix, proportion_threshold: float
    ) -> pd.DataFrame:
        """
        Long-format table of dominant barcodes.

        Returns:
            pd.DataFrame: Columns sample, barcode, count, proportion; sorted by
            sample column order then proportion descending
        """
        self._check(matrix)
        if not 0 < proportion_threshold <= 1:
            raise ValueError(
                f"proportion_threshold must be in (0, 1], got {proportion_threshold}"
            )

        proportions = self._proportions(matrix)
        rows = []
        for sample in matrix.sample_names:
            column = proportions[sample]
            hits = column[column >= proportion_threshold]
            order = self._rank_order(hits.to_numpy(), self._positions(matrix, hits.index))
            for barcode in hits.index[order]:
                rows.append(
                    {
                        "sample": sample,
                        "barcode": barcode,
                        "count": matrix.counts.at[barcode, sample],
                        "proportion": column[barcode],
                    }
                )

        self.logger.log_step(
            "Dominant barcodes",
            f"{len(rows)} sample/barcode pairs at proportion >= {proportion_threshold}",
        )
        return pd.DataFrame(rows, columns=["sample", "barcode", "count", "proportion"])

    def percentile_barcodes(
        self, matrix: CountMatrix, percentile: float
    ) -> PercentileBarcodes:
        """
        Minimal set of top barcodes explaining ``percentile`` of each sample.

        Barcodes are ranked by count descending, ties broken by library rank
        (row position) ascending, and taken until their cumulative proportion
        first reaches ``percentile``. The size of that set (NumBarcodes)
        measures clonal concentration.

        Args:
            matrix: Count matrix
            percentile: Fraction of reads to explain, in (0, 1]

        Returns:
            PercentileBarcodes: Ranked barcodes, counts and a long table per sample
        """
        self._check(matrix)
        if not 0 < percentile <= 1:
            raise ValueError(f"percentile must be in (0, 1], got {percentile}")

        positions = np.arange(matrix.n_barcodes)
        ranked: Dict[str, List[Hashable]] = {}
        degenerate: List[str] = []
        frames = []

        for sample in matrix.sample_names:
            counts = matrix.counts[sample].to_numpy(dtype=float)
            total = counts.sum()
            if total <= 0:
                ranked[sample] = []
                degenerate.append(sample)
                self.logger.log_diagnostic(
                    "DegenerateSample", sample, "zero total count, no percentile barcodes"
                )
                continue

            order = self._rank_order(counts, positions)
            sorted_counts = counts[order]
            cumulative = np.cumsum(sorted_counts) / total
            n_top = int(np.argmax(cumulative >= percentile - PERCENTILE_TOLERANCE)) + 1

            top = order[:n_top]
            barcodes = list(matrix.counts.index[top])
            ranked[sample] = barcodes
            frames.append(
                pd.DataFrame(
                    {
                        "sample": sample,
                        "rank": np.arange(1, n_top + 1),
                        "barcode": barcodes,
                        "count": matrix.counts[sample].to_numpy()[top],
                        "proportion": sorted_counts[:n_top] / total,
                        "cumulative_proportion": cumulative[:n_top],
                    }
                )
            )

        columns = ["sample", "rank", "barcode", "count", "proportion", "cumulative_proportion"]
        table = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=columns)

        result = PercentileBarcodes(
            percentile=percentile, ranked=ranked, table=table[columns], degenerate=degenerate
        )
        self.logger.log_step(
            "Percentile barcodes",
            f"NumBarcodes at {percentile:.0%}: {result.num_barcodes.to_dict()}",
        )
        return result

    def _proportions(self, matrix: CountMatrix) -> pd.DataFrame:
        totals = matrix.sample_totals()
        for sample in totals.index[totals <= 0]:
            self.logger.log_diagnostic(
                "DegenerateSample", str(sample), "zero total count, no dominant barcodes"
            )
        safe_totals = totals.where(totals > 0, np.nan)
        return matrix.counts.div(safe_totals, axis=1).fillna(0.0)

    @staticmethod
    def _positions(matrix: CountMatrix, barcodes: pd.Index) -> np.ndarray:
        return matrix.counts.index.get_indexer(barcodes)

    @staticmethod
    def _rank_order(values: np.ndarray, positions: np.ndarray) -> np.ndarray:
        """Indices sorting by value descending, then library position ascending"""
        return np.lexsort((positions, -values))

    def _check(self, matrix: CountMatrix) -> None:
        if matrix.is_empty:
            raise EmptyMatrixError("Count matrix has no barcodes; dominance is undefined")
