"""
Main application service orchestrating the barcode count pipeline.
"""

from typing import List, Optional

from lintrace.domain.exceptions import EmptyMatrixError
from lintrace.domain.models import (
    AnalysisConfig,
    AnalysisResult,
    CountMatrix,
    Diagnostic,
    DiagnosticKind,
    ProcessingConfig,
    ReplicateCorrelation,
)
from lintrace.domain.services.differential_abundance import DifferentialAbundanceTester
from lintrace.domain.services.diversity_calculator import DiversityCalculator
from lintrace.domain.services.dominance_analyzer import DominanceAnalyzer
from lintrace.domain.services.normalizer import Normalizer
from lintrace.domain.services.replicate_analyzer import (
    ReplicateCollapser,
    ReplicateCorrelator,
)
from lintrace.domain.services.thresholder import Thresholder
from lintrace.infrastructure.data.data_loader import CountDataLoader
from lintrace.infrastructure.data.data_saver import CountDataSaver
from lintrace.infrastructure.logger import Logger


class BarcodeProcessingService:
    """Main application service orchestrating the entire pipeline"""

    def __init__(self, config: Optional[ProcessingConfig] = None, logger: Optional[Logger] = None):
        self.config = config
        log_file = config.log_file if config is not None else None
        self.logger = logger if logger is not None else Logger(log_file)

        # Initialize all services
        self.data_loader = CountDataLoader(self.logger)
        self.data_saver = CountDataSaver(self.logger)
        self.thresholder = Thresholder(self.logger)
        self.normalizer = Normalizer(self.logger)
        self.replicate_correlator = ReplicateCorrelator(self.logger)
        self.replicate_collapser = ReplicateCollapser(self.logger)
        self.dominance_analyzer = DominanceAnalyzer(self.logger)
        self.diversity_calculator = DiversityCalculator(self.logger)
        self.differential_tester = DifferentialAbundanceTester(self.logger)

    def process(self) -> AnalysisResult:
        """
        Load the count matrix, analyze it and save every derived table.

        Returns:
            AnalysisResult: Complete analysis results
        """
        if self.config is None:
            raise ValueError("process() requires a ProcessingConfig")

        self.logger.log_step("Processing pipeline", f"Starting run {self.config.run_name}")

        # Step 1: Load data
        self.logger.log_step("Data loading", "Building count matrix from metadata and count files")
        matrix = self.data_loader.load_from_config(self.config)

        # Step 2: Analyze
        result = self.analyze(matrix, self.config.analysis)

        # Step 3: Save results
        self.logger.log_step("Result saving", "Saving all derived tables")
        self.data_saver.save_results(result, self.config)

        self.logger.log_success("Processing pipeline completed successfully")
        return result

    def analyze(self, matrix: CountMatrix, config: AnalysisConfig) -> AnalysisResult:
        """
        Run one analysis over a count matrix without touching the filesystem.

        The same matrix can be analyzed repeatedly with different configurations;
        it is never modified.

        Args:
            matrix: Raw count matrix
            config: Analysis parameters

        Returns:
            AnalysisResult: Filtered, normalized and collapsed matrices plus
            composition statistics and diagnostics

        Raises:
            EmptyMatrixError: If thresholding removes every barcode
        """
        self.logger.log_step("Analysis", f"Running '{config.name}'")
        self.logger.log_matrix_shape("Input matrix", matrix.shape)
        diagnostics: List[Diagnostic] = []

        # Step 1: Optional threshold sweep
        threshold_sweep = None
        if config.sweep_values:
            threshold_sweep = self.thresholder.sweep(
                matrix,
                config.sweep_values,
                modes=[config.threshold.mode],
                min_samples_options=config.sweep_min_samples,
            )

        # Step 2: Noise thresholding
        filtered = self.thresholder.threshold_config(matrix, config.threshold)
        if filtered.is_empty:
            raise EmptyMatrixError(
                f"Thresholding ({config.threshold.mode}, value={config.threshold.value}, "
                f"min_samples={config.threshold.min_samples}) removed every barcode"
            )
        diagnostics.extend(self._degenerate_diagnostics(matrix, filtered))

        # Step 3: Depth normalization
        normalized = self.normalizer.normalize(
            filtered, config.normalization, depth=config.rarefy_depth, seed=config.seed
        )

        # Step 4: Replicate correlation and collapsing
        replicate_correlation = None
        collapsed = None
        if config.group_key is not None and matrix.collapsed:
            self.logger.log_warning("Matrix is already collapsed; skipping replicate handling")
        elif config.group_key is not None:
            replicate_correlation = self.replicate_correlator.correlate(
                normalized,
                config.group_key,
                transform=config.correlation_transform,
                pairing=config.correlation_pairing,
            )
            diagnostics.extend(
                self._replicate_diagnostics(replicate_correlation, config.correlation_threshold)
            )
            collapsed = self.replicate_collapser.collapse(
                normalized, config.group_key, config.collapse_method
            )

        analyzed = collapsed if collapsed is not None else normalized

        # Step 5: Composition statistics
        diversity = self.diversity_calculator.calc_diversity(analyzed)
        dominant_table = self.dominance_analyzer.dominant_table(
            analyzed, config.dominance_threshold
        )
        dominant_barcodes = DominanceAnalyzer.sets_from_table(
            dominant_table, analyzed.sample_names
        )
        percentile_barcodes = self.dominance_analyzer.percentile_barcodes(
            analyzed, config.percentile
        )

        # Step 6: Optional differential abundance on raw counts
        differential_abundance = None
        if config.condition_key and config.reference is not None and config.treatment is not None:
            counts_for_test = filtered
            if collapsed is not None:
                counts_for_test = self.replicate_collapser.collapse(
                    filtered, config.group_key, "sum"
                )
            diagnostics.extend(self._excluded_from_test(counts_for_test, config))
            differential_abundance = self.differential_tester.test(
                counts_for_test,
                config.condition_key,
                config.reference,
                config.treatment,
                dispersion=config.dispersion,
            )

        for diagnostic in diagnostics:
            self.logger.log_diagnostic(diagnostic.kind.value, diagnostic.subject, diagnostic.message)
        self.logger.log_success(
            f"Analysis '{config.name}' completed with {len(diagnostics)} diagnostics"
        )

        return AnalysisResult(
            config=config,
            raw=matrix,
            filtered=filtered,
            normalized=normalized,
            collapsed=collapsed,
            diversity=diversity,
            dominant_barcodes=dominant_barcodes,
            dominant_table=dominant_table,
            percentile_barcodes=percentile_barcodes,
            threshold_sweep=threshold_sweep,
            replicate_correlation=replicate_correlation,
            differential_abundance=differential_abundance,
            diagnostics=diagnostics,
        )

    def _degenerate_diagnostics(
        self, raw: CountMatrix, filtered: CountMatrix
    ) -> List[Diagnostic]:
        """Samples with zero reads in the input or left without reads by thresholding"""
        raw_degenerate = set(raw.degenerate_samples())
        diagnostics = []
        for sample in filtered.degenerate_samples():
            if sample in raw_degenerate:
                message = "sample has no reads"
                stage = "input"
            else:
                message = "no reads left after thresholding"
                stage = "threshold"
            diagnostics.append(
                Diagnostic(DiagnosticKind.DEGENERATE_SAMPLE, sample, message, stage=stage)
            )
        return diagnostics

    def _excluded_from_test(
        self, matrix: CountMatrix, config: AnalysisConfig
    ) -> List[Diagnostic]:
        """Compared samples without reads, which the differential abundance test skips"""
        if config.condition_key not in matrix.samples.columns:
            return []
        conditions = matrix.samples[config.condition_key].astype(str)
        compared = set(conditions.index[conditions.isin([str(config.reference), str(config.treatment)])])
        return [
            Diagnostic(
                DiagnosticKind.DEGENERATE_SAMPLE,
                sample,
                "no reads, excluded from differential abundance",
                stage="differential_abundance",
            )
            for sample in matrix.degenerate_samples()
            if sample in compared
        ]

    def _replicate_diagnostics(
        self, correlation: ReplicateCorrelation, threshold: float
    ) -> List[Diagnostic]:
        diagnostics = []
        for group, members in correlation.skipped.items():
            diagnostics.append(
                Diagnostic(
                    DiagnosticKind.INSUFFICIENT_REPLICATES,
                    group,
                    f"{len(members)} replicate(s): {members}",
                    stage="replicates",
                )
            )
        for group, value in correlation.below(threshold).items():
            diagnostics.append(
                Diagnostic(
                    DiagnosticKind.POOR_REPLICATE_CORRELATION,
                    group,
                    f"correlation {value:.4f} below {threshold}",
                    stage="replicates",
                )
            )
        return diagnostics
