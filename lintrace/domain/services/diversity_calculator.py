"""
Per-sample ecological diversity indices.
"""

from typing import Dict, Optional

import numpy as np
import pandas as pd
from scipy.stats import entropy

from lintrace.domain.exceptions import EmptyMatrixError
from lintrace.domain.models import SAMPLE_INDEX_NAME, CountMatrix
from lintrace.infrastructure.logger import Logger


DIVERSITY_COLUMNS = ["Shannon", "Simpson", "InverseSimpson", "Gini", "Richness", "Evenness"]


def gini_coefficient(values: np.ndarray) -> float:
    """
    Gini coefficient from the Lorenz curve of non-negative values.

    0 for a perfectly even distribution, approaching 1 as a single value
    holds everything.
    """
    x = np.sort(np.asarray(values, dtype=float))
    if x.size == 0 or x.sum() <= 0:
        return float("nan")
    n = x.size
    lorenz = np.cumsum(x) / x.sum()
    return float((n + 1 - 2 * lorenz.sum()) / n)


class DiversityCalculator:
    """Computes per-sample diversity indices"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def calc_diversity(self, matrix: CountMatrix) -> pd.DataFrame:
        """
        Compute diversity indices for every sample column.

        Proportions are taken over barcodes with a nonzero count. Samples with
        a zero total get NaN indices and a Richness of 0.

        Args:
            matrix: Count matrix, raw, normalized or collapsed

        Returns:
            pd.DataFrame: Indexed by sample with Shannon, Simpson,
            InverseSimpson, Gini, Richness and Evenness columns
        """
        if matrix.is_empty:
            raise EmptyMatrixError("Count matrix has no barcodes; diversity is undefined")

        rows = {}
        for sample in matrix.sample_names:
            rows[sample] = self._sample_indices(sample, matrix.counts[sample].to_numpy(dtype=float))

        diversity = pd.DataFrame.from_dict(rows, orient="index", columns=DIVERSITY_COLUMNS)
        diversity["Richness"] = diversity["Richness"].astype(int)
        diversity.index.name = SAMPLE_INDEX_NAME

        self.logger.log_step("Diversity", f"Computed indices for {len(diversity)} samples")
        return diversity

    def _sample_indices(self, sample: str, counts: np.ndarray) -> Dict[str, float]:
        present = counts[counts > 0]
        richness = int(present.size)
        if richness == 0:
            self.logger.log_diagnostic(
                "DegenerateSample", sample, "zero total count, diversity indices undefined"
            )
            return {
                "Shannon": np.nan,
                "Simpson": np.nan,
                "InverseSimpson": np.nan,
                "Gini": np.nan,
                "Richness": 0,
                "Evenness": np.nan,
            }

        p = present / present.sum()
        shannon = float(entropy(p))
        simpson = float(np.sum(p ** 2))
        return {
            "Shannon": shannon,
            "Simpson": simpson,
            "InverseSimpson": 1.0 / simpson,
            "Gini": gini_coefficient(p),
            "Richness": richness,
            # Pielou evenness is undefined for a single barcode
            "Evenness": shannon / np.log(richness) if richness > 1 else np.nan,
        }
