"""End-to-end tests for the application service."""

import os

import numpy as np
import pandas as pd
import pytest

from lintrace.application.barcode_processing_service import BarcodeProcessingService
from lintrace.domain.exceptions import EmptyMatrixError
from lintrace.domain.models import (
    AnalysisConfig,
    CountMatrix,
    DiagnosticKind,
    ProcessingConfig,
    ThresholdConfig,
)


@pytest.fixture
def service():
    return BarcodeProcessingService()


class TestAnalyze:
    def test_grouped_analysis(self, service, lineage_matrix):
        config = AnalysisConfig(group_key="group", threshold=ThresholdConfig("absolute", 5, 2))

        result = service.analyze(lineage_matrix, config)

        assert result.collapsed.sample_names == ["ctrl_d0", "ctrl_d14", "drug_d14"]
        assert result.analyzed is result.collapsed
        assert list(result.diversity.index) == ["ctrl_d0", "ctrl_d14", "drug_d14"]
        assert set(result.dominant_barcodes) == {"ctrl_d0", "ctrl_d14", "drug_d14"}
        assert set(result.replicate_correlation.coefficients) == {"ctrl_d0", "ctrl_d14", "drug_d14"}
        assert result.filtered.n_barcodes <= lineage_matrix.n_barcodes
        assert np.allclose(result.normalized.counts.sum(), 1e6)

    def test_input_left_untouched(self, service, lineage_matrix):
        before = lineage_matrix.counts.copy()

        service.analyze(lineage_matrix, AnalysisConfig(group_key="group"))

        pd.testing.assert_frame_equal(lineage_matrix.counts, before)
        assert not lineage_matrix.collapsed

    def test_two_configurations_on_one_matrix(self, service, lineage_matrix):
        loose = service.analyze(lineage_matrix, AnalysisConfig(name="loose"))
        strict = service.analyze(
            lineage_matrix,
            AnalysisConfig(name="strict", threshold=ThresholdConfig("absolute", 50, 2)),
        )

        assert strict.filtered.n_barcodes < loose.filtered.n_barcodes
        assert loose.collapsed is None
        assert loose.analyzed is loose.normalized

    def test_threshold_removing_everything(self, service, example_matrix):
        config = AnalysisConfig(threshold=ThresholdConfig("absolute", 1000, 1))

        with pytest.raises(EmptyMatrixError):
            service.analyze(example_matrix, config)

    def test_singleton_group_diagnostic(self, service):
        matrix = CountMatrix.from_arrays(
            [[10, 12, 4], [20, 18, 9], [30, 31, 1]],
            ["B1", "B2", "B3"],
            ["A_R1", "A_R2", "B_R1"],
            metadata=pd.DataFrame({"group": ["A", "A", "B"]}, index=["A_R1", "A_R2", "B_R1"]),
        )

        result = service.analyze(matrix, AnalysisConfig(group_key="group"))

        kinds = {(d.kind, d.subject) for d in result.diagnostics}
        assert (DiagnosticKind.INSUFFICIENT_REPLICATES, "B") in kinds
        assert result.collapsed.sample_names == ["A", "B"]

    def test_degenerate_sample_diagnostic(self, service):
        matrix = CountMatrix.from_arrays(
            [[100, 0], [0, 3], [50, 0]], ["B1", "B2", "B3"], ["S1", "S2"]
        )

        result = service.analyze(matrix, AnalysisConfig(threshold=ThresholdConfig("absolute", 5, 1)))

        degenerate = [d for d in result.diagnostics if d.kind == DiagnosticKind.DEGENERATE_SAMPLE]
        assert [(d.subject, d.stage) for d in degenerate] == [("S2", "threshold")]
        assert np.isnan(result.diversity.loc["S2", "Shannon"])
        assert result.diagnostics_frame()["kind"].tolist() == ["DegenerateSample"]

    def test_threshold_sweep(self, service, lineage_matrix):
        config = AnalysisConfig(sweep_values=[1, 10, 100], sweep_min_samples=[1, 2])

        result = service.analyze(lineage_matrix, config)

        assert len(result.threshold_sweep) == 6

    def test_differential_abundance(self, service, lineage_matrix):
        config = AnalysisConfig(condition_key="condition", reference="ctrl", treatment="drug")

        result = service.analyze(lineage_matrix, config)

        assert list(result.differential_abundance.index) == result.filtered.barcodes
        assert "padj" in result.differential_abundance.columns

    def test_differential_abundance_with_sample_without_reads(self, service):
        counts = pd.DataFrame(
            {
                "c1": [1000, 500, 10],
                "c2": [1010, 490, 12],
                "c3": [990, 510, 9],
                "t1": [1000, 500, 200],
                "t2": [0, 0, 0],
                "t3": [985, 505, 210],
            },
            index=["stable_a", "stable_b", "expanded"],
        )
        samples = pd.DataFrame({"condition": ["ctrl"] * 3 + ["drug"] * 3}, index=list(counts.columns))
        config = AnalysisConfig(
            threshold=ThresholdConfig("absolute", 5, 1),
            condition_key="condition",
            reference="ctrl",
            treatment="drug",
        )

        result = service.analyze(CountMatrix(counts, samples), config)

        assert result.differential_abundance.loc["expanded", "log2FoldChange"] > 3
        assert np.isnan(result.diversity.loc["t2", "Shannon"])
        excluded = [
            d.subject for d in result.diagnostics
            if d.kind == DiagnosticKind.DEGENERATE_SAMPLE and d.stage == "differential_abundance"
        ]
        assert excluded == ["t2"]

    def test_differential_abundance_skipped_without_treatment(self, service, lineage_matrix):
        config = AnalysisConfig(condition_key="condition", reference="ctrl")

        result = service.analyze(lineage_matrix, config)

        assert result.differential_abundance is None


class TestProcess:
    def test_writes_result_tables(self, count_files, tmp_path):
        config = ProcessingConfig(
            out_dir=str(tmp_path / "out"),
            run_name="run1",
            metadata_file=count_files["metadata_file"],
            counts_dir=count_files["counts_dir"],
            analysis=AnalysisConfig(name="main", group_key="group"),
        )
        service = BarcodeProcessingService(config)

        result = service.process()

        paths = service.data_saver.result_paths(config)
        for key in ("depth", "filtered", "normalized", "collapsed", "diversity",
                    "dominant", "percentile", "replicate_correlation", "diagnostics"):
            assert os.path.exists(paths[key]), key
        assert os.path.exists(paths["collapsed_metadata"])
        assert not os.path.exists(paths["differential_abundance"])
        assert paths["diversity"].endswith("run1_main_Diversity.csv")

        saved = pd.read_csv(paths["collapsed"], index_col=0)
        assert list(saved.columns) == ["A", "B"]
        assert result.collapsed.samples.loc["B", "n_replicates"] == 1

    def test_requires_config(self):
        with pytest.raises(ValueError):
            BarcodeProcessingService().process()
