"""
Command line argument parsing and validation for the barcode count pipeline.
"""

import argparse
import os
from typing import List, Optional, Sequence, Union

from lintrace.domain.models import AnalysisConfig, GroupKey, ProcessingConfig, ThresholdConfig
from lintrace.domain.services.normalizer import NORMALIZATION_METHODS
from lintrace.domain.services.replicate_analyzer import (
    COLLAPSE_METHODS,
    CORRELATION_TRANSFORMS,
    PAIRING_POLICIES,
    strip_suffix,
    suffix_pattern,
)
from lintrace.domain.services.thresholder import THRESHOLD_MODES
from lintrace.infrastructure.logger import Logger


class ArgumentParser:
    """Command line argument parsing and validation"""

    def __init__(self):
        self.logger = Logger()
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create and configure the argument parser"""
        parser = argparse.ArgumentParser(
            description="Filter, normalize and summarize lineage-tracing barcode counts"
        )

        # Required arguments
        parser.add_argument(
            "-o", "--out_dir",
            type=str,
            required=True,
            help="Output directory for saving results"
        )
        parser.add_argument(
            "-n", "--run_name",
            type=str,
            required=True,
            help="Run name used as prefix for every output file"
        )
        parser.add_argument(
            "-m", "--metadata_file",
            type=str,
            required=True,
            help="Sample metadata table (CSV or TSV), one row per sample"
        )

        # Input layout
        inputs = parser.add_mutually_exclusive_group(required=True)
        inputs.add_argument(
            "-c", "--counts_dir",
            type=str,
            help="Directory with one barcode count file per sample"
        )
        inputs.add_argument(
            "-M", "--matrix_file",
            type=str,
            help="Wide barcode-by-sample count table, barcodes in the first column"
        )
        parser.add_argument(
            "-L", "--library_file",
            type=str,
            help="Reference library (barcode, count) fixing barcode rank order"
        )
        parser.add_argument("--sample_column", type=str, default="sample",
                            help="Metadata column with sample names (default: sample)")
        parser.add_argument("--file_column", type=str, default="files",
                            help="Metadata column with count file names (default: files)")
        parser.add_argument("--file_pattern", type=str, default="{sample}.csv",
                            help="Count file name pattern when no file column exists (default: {sample}.csv)")
        parser.add_argument("--barcode_column", type=str, default="barcode",
                            help="Barcode column in count files (default: barcode)")
        parser.add_argument("--count_column", type=str, default="count",
                            help="Count column in count files (default: count)")

        # Thresholding
        parser.add_argument(
            "-t", "--threshold_mode",
            choices=THRESHOLD_MODES,
            default="absolute",
            help="Noise floor mode: absolute count or relative proportion (default: absolute)"
        )
        parser.add_argument(
            "-v", "--threshold_value",
            type=float,
            default=1.0,
            help="Noise floor value; a count for absolute mode, a proportion for relative mode (default: 1)"
        )
        parser.add_argument(
            "-s", "--min_samples",
            type=int,
            default=1,
            help="Minimum number of samples a barcode must pass the noise floor in (default: 1)"
        )
        parser.add_argument(
            "--sweep_values",
            type=str,
            help="Comma-separated threshold values to evaluate before committing (e.g. '1,5,10')"
        )
        parser.add_argument(
            "--sweep_min_samples",
            type=str,
            default="1",
            help="Comma-separated min_samples values for the threshold sweep (default: 1)"
        )

        # Normalization
        parser.add_argument(
            "-N", "--normalization",
            choices=NORMALIZATION_METHODS,
            default="CPM",
            help="Depth normalization method (default: CPM)"
        )
        parser.add_argument("--rarefy_depth", type=int,
                            help="Rarefaction depth (default: smallest nonzero sample depth)")
        parser.add_argument("--seed", type=int, default=0, help="Random seed for rarefying (default: 0)")

        # Replicates
        grouping = parser.add_mutually_exclusive_group()
        grouping.add_argument(
            "-g", "--group_column",
            type=str,
            help="Metadata column naming the technical replicate group of each sample"
        )
        grouping.add_argument(
            "--replicate_suffix",
            type=str,
            help="Regex for the replicate suffix of sample names (e.g. '_R[0-9]+')"
        )
        grouping.add_argument(
            "--strip_chars",
            type=int,
            help="Group replicates by dropping this many trailing characters of the sample name"
        )
        parser.add_argument("--collapse_method", choices=COLLAPSE_METHODS, default="mean",
                            help="How replicate columns are merged (default: mean)")
        parser.add_argument("--correlation_transform", choices=CORRELATION_TRANSFORMS, default="log1p",
                            help="Transform applied before correlating replicates (default: log1p)")
        parser.add_argument("--correlation_pairing", choices=PAIRING_POLICIES, default="first",
                            help="Replicate pairing policy for groups larger than two (default: first)")
        parser.add_argument("--correlation_threshold", type=float, default=0.999,
                            help="Replicate correlations below this value are flagged (default: 0.999)")

        # Composition
        parser.add_argument("-d", "--dominance_threshold", type=float, default=0.05,
                            help="Minimum proportion of a sample for a dominant barcode (default: 0.05)")
        parser.add_argument("-p", "--percentile", type=float, default=0.9,
                            help="Fraction of reads explained by the percentile barcode set (default: 0.9)")

        # Differential abundance
        parser.add_argument("--condition_column", type=str,
                            help="Metadata column with the condition for differential abundance")
        parser.add_argument("--reference", type=str, help="Reference condition value")
        parser.add_argument("--treatment", type=str, help="Treatment condition value")
        parser.add_argument("--dispersion", type=float, default=0.1,
                            help="Negative binomial dispersion for differential abundance (default: 0.1)")

        parser.add_argument("--log_file", type=str, help="Optional log file")

        return parser

    def parse_arguments(self, argv: Optional[Sequence[str]] = None) -> ProcessingConfig:
        """Parse command line arguments and return ProcessingConfig"""
        args = self.parser.parse_args(argv)

        analysis = AnalysisConfig(
            name="analysis",
            threshold=ThresholdConfig(
                mode=args.threshold_mode,
                value=args.threshold_value,
                min_samples=args.min_samples,
            ),
            normalization=args.normalization,
            group_key=self._group_key(args),
            collapse_method=args.collapse_method,
            correlation_transform=args.correlation_transform,
            correlation_pairing=args.correlation_pairing,
            correlation_threshold=args.correlation_threshold,
            dominance_threshold=args.dominance_threshold,
            percentile=args.percentile,
            sweep_values=[float(v) for v in self._parse_list(args.sweep_values)],
            sweep_min_samples=[int(v) for v in self._parse_list(args.sweep_min_samples)],
            condition_key=args.condition_column,
            reference=args.reference,
            treatment=args.treatment,
            dispersion=args.dispersion,
            rarefy_depth=args.rarefy_depth,
            seed=args.seed,
        )

        config = ProcessingConfig(
            out_dir=args.out_dir,
            run_name=args.run_name,
            metadata_file=args.metadata_file,
            counts_dir=args.counts_dir,
            matrix_file=args.matrix_file,
            library_file=args.library_file,
            sample_column=args.sample_column,
            file_column=args.file_column,
            file_pattern=args.file_pattern,
            barcode_column=args.barcode_column,
            count_column=args.count_column,
            log_file=args.log_file,
            analysis=analysis,
        )

        # Validate configuration
        if not self.validate_config(config):
            raise ValueError("Invalid configuration")

        return config

    def _group_key(self, args: argparse.Namespace) -> Optional[GroupKey]:
        if args.group_column:
            return args.group_column
        if args.replicate_suffix:
            return suffix_pattern(args.replicate_suffix)
        if args.strip_chars is not None:
            return strip_suffix(args.strip_chars)
        return None

    def _parse_list(self, values: Union[str, List[str], None]) -> List[str]:
        """Parse comma-separated values from string or list input"""
        if values is None:
            return []
        if isinstance(values, str):
            values = values.strip('"').strip("'").split(",")
        return [v.strip().strip('"').strip("'") for v in values if v.strip()]

    def validate_config(self, config: ProcessingConfig) -> bool:
        """Validate the processing configuration"""
        try:
            os.makedirs(config.out_dir, exist_ok=True)

            for label, path in (
                ("Metadata file", config.metadata_file),
                ("Matrix file", config.matrix_file),
                ("Library file", config.library_file),
            ):
                if path and not os.path.exists(path):
                    self.logger.log_error(FileNotFoundError(f"{label} not found: {path}"),
                                          "Configuration validation")
                    return False
            if config.counts_dir and not os.path.isdir(config.counts_dir):
                self.logger.log_error(
                    FileNotFoundError(f"Counts directory not found: {config.counts_dir}"),
                    "Configuration validation"
                )
                return False

            analysis = config.analysis
            if analysis.threshold.min_samples < 1:
                self.logger.log_error(ValueError("min_samples must be at least 1"),
                                      "Configuration validation")
                return False
            if analysis.threshold.mode == "relative" and not 0 <= analysis.threshold.value <= 1:
                self.logger.log_error(
                    ValueError(f"Relative threshold {analysis.threshold.value} is not a proportion"),
                    "Configuration validation"
                )
                return False
            if not 0 < analysis.percentile <= 1:
                self.logger.log_error(ValueError(f"Percentile {analysis.percentile} outside (0, 1]"),
                                      "Configuration validation")
                return False
            if not 0 < analysis.dominance_threshold <= 1:
                self.logger.log_error(
                    ValueError(f"Dominance threshold {analysis.dominance_threshold} outside (0, 1]"),
                    "Configuration validation"
                )
                return False

            if analysis.threshold.mode == "absolute" and analysis.threshold.value < 1:
                self.logger.log_warning(
                    f"Absolute threshold {analysis.threshold.value} keeps every detected barcode"
                )
            if analysis.correlation_threshold > 1 or analysis.correlation_threshold < -1:
                self.logger.log_warning(
                    f"Correlation threshold {analysis.correlation_threshold} is outside [-1, 1]"
                )
            if analysis.condition_key and (analysis.reference is None or analysis.treatment is None):
                self.logger.log_warning(
                    "Condition column given without both reference and treatment; "
                    "differential abundance will be skipped"
                )
            if analysis.group_key is None and analysis.collapse_method != "mean":
                self.logger.log_warning("Collapse method set but no replicate grouping given")

            self.logger.log_success("Configuration validation passed")
            return True

        except OSError as e:
            self.logger.log_error(e, "Configuration validation")
            return False
