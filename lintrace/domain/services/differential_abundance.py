"""
Differential barcode abundance between two conditions.

Each barcode is fitted with a negative binomial GLM from statsmodels, using
the log library size as offset and a fixed dispersion. Wald p-values are
adjusted with Benjamini-Hochberg.
"""

import warnings
from typing import Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.stats.multitest import fdrcorrection
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from lintrace.domain.exceptions import EmptyMatrixError, SchemaMismatchError
from lintrace.domain.models import BARCODE_INDEX_NAME, CountMatrix
from lintrace.infrastructure.logger import Logger


RESULT_COLUMNS = ["baseMean", "log2FoldChange", "stat", "pvalue", "padj"]


class DifferentialAbundanceTester:
    """Per-barcode count test between a reference and a treatment condition"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def test(
        self,
        matrix: CountMatrix,
        condition_key: str,
        reference: str,
        treatment: str,
        dispersion: float = 0.1,
    ) -> pd.DataFrame:
        """
        Test every barcode for a change in abundance between two conditions.

        Samples without reads are excluded from the fit and logged as degenerate.

        Args:
            matrix: Raw (or summed) count matrix
            condition_key: Metadata column holding the condition of each sample
            reference: Condition value used as baseline
            treatment: Condition value compared against the baseline
            dispersion: Negative binomial dispersion (alpha)

        Returns:
            pd.DataFrame: Indexed by barcode with baseMean, log2FoldChange,
            stat, pvalue and padj columns
        """
        if matrix.is_empty:
            raise EmptyMatrixError("Count matrix has no barcodes to test")
        if condition_key not in matrix.samples.columns:
            raise SchemaMismatchError(
                f"Condition column '{condition_key}' not found in sample metadata"
            )

        conditions = matrix.samples[condition_key].astype(str)
        selected = conditions[conditions.isin([str(reference), str(treatment)])].index
        degenerate = set(matrix.degenerate_samples())
        for sample in selected:
            if sample in degenerate:
                self.logger.log_diagnostic(
                    "DegenerateSample", sample, "zero total count, excluded from differential abundance"
                )
        selected = [sample for sample in selected if sample not in degenerate]

        subset = matrix.subset_samples(selected)
        is_treatment = (conditions.loc[selected] == str(treatment)).to_numpy()
        if is_treatment.all() or not is_treatment.any():
            raise SchemaMismatchError(
                f"Need samples with reads for both '{reference}' and '{treatment}' "
                f"in column '{condition_key}'"
            )

        totals = subset.sample_totals().to_numpy(dtype=float)
        size_factors = totals / np.exp(np.mean(np.log(totals)))
        offset = np.log(size_factors)
        design = sm.add_constant(is_treatment.astype(float), has_constant="add")
        family = sm.families.NegativeBinomial(alpha=dispersion)

        self.logger.log_step(
            "Differential abundance",
            f"{subset.n_barcodes} barcodes, {int((~is_treatment).sum())} {reference} vs "
            f"{int(is_treatment.sum())} {treatment} samples",
        )

        rows = []
        for barcode in subset.counts.index:
            y = subset.counts.loc[barcode].to_numpy(dtype=float)
            base_mean = float(np.mean(y / size_factors))
            if y.sum() == 0:
                rows.append(self._untested(base_mean))
                continue
            try:
                with warnings.catch_warnings():
                    warnings.simplefilter("ignore")
                    fit = sm.GLM(y, design, family=family, offset=offset).fit()
                coefficient = float(fit.params[1])
                rows.append(
                    {
                        "baseMean": base_mean,
                        "log2FoldChange": coefficient / np.log(2),
                        "stat": float(fit.tvalues[1]),
                        "pvalue": float(fit.pvalues[1]),
                    }
                )
            except (PerfectSeparationError, ValueError, np.linalg.LinAlgError) as e:
                self.logger.log_warning(f"Barcode {barcode}: model fit failed ({e})")
                rows.append(self._untested(base_mean))

        results = pd.DataFrame(rows, index=pd.Index(subset.counts.index, name=BARCODE_INDEX_NAME))
        results["padj"] = np.nan
        tested = results["pvalue"].notna()
        if tested.any():
            _, padj = fdrcorrection(results.loc[tested, "pvalue"].to_numpy())
            results.loc[tested, "padj"] = padj

        self.logger.log_statistics(
            "Barcodes with padj < 0.05", float((results["padj"] < 0.05).sum())
        )
        return results[RESULT_COLUMNS]

    @staticmethod
    def _untested(base_mean: float) -> dict:
        return {
            "baseMean": base_mean,
            "log2FoldChange": np.nan,
            "stat": np.nan,
            "pvalue": np.nan,
        }
