"""
Core domain models for the barcode count processing pipeline.
Contains the count matrix abstraction plus configuration and result structures.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np
import pandas as pd

from lintrace.domain.exceptions import SchemaMismatchError


# A metadata column name, or a function mapping a sample id to its group
GroupKey = Union[str, Callable[[str], str]]

SAMPLE_INDEX_NAME = "sample"
BARCODE_INDEX_NAME = "barcode"


@dataclass
class CountMatrix:
    """
    Barcode-by-sample count table paired with one metadata row per sample.

    ``counts`` is indexed by barcode identifier (row position is the barcode's
    rank in the reference library) with one column per sample. ``samples`` is
    indexed by sample identifier. The two must describe exactly the same set of
    samples; this is checked on construction, so every operation that builds a
    new CountMatrix re-checks it.

    Instances are treated as immutable: every pipeline operation returns a new
    CountMatrix and leaves its input untouched.
    """

    counts: pd.DataFrame
    samples: pd.DataFrame
    collapsed: bool = False

    def __post_init__(self):
        if not isinstance(self.counts, pd.DataFrame):
            raise TypeError("counts must be a pandas DataFrame")
        if not isinstance(self.samples, pd.DataFrame):
            raise TypeError("samples must be a pandas DataFrame")

        counts = self.counts.copy()
        counts.columns = pd.Index([str(c) for c in counts.columns])
        counts.index.name = BARCODE_INDEX_NAME

        samples = self.samples.copy()
        samples.index = pd.Index([str(s) for s in samples.index])
        samples.index.name = SAMPLE_INDEX_NAME

        duplicated_samples = counts.columns[counts.columns.duplicated()].unique()
        if len(duplicated_samples) > 0:
            raise SchemaMismatchError(
                f"Duplicate sample columns in counts: {list(duplicated_samples)}"
            )
        duplicated_rows = samples.index[samples.index.duplicated()].unique()
        if len(duplicated_rows) > 0:
            raise SchemaMismatchError(
                f"Duplicate sample rows in metadata: {list(duplicated_rows)}"
            )
        duplicated_barcodes = counts.index[counts.index.duplicated()].unique()
        if len(duplicated_barcodes) > 0:
            raise SchemaMismatchError(
                f"Duplicate barcode identifiers: {list(duplicated_barcodes[:10])}"
            )

        missing_metadata = [c for c in counts.columns if c not in samples.index]
        missing_counts = [s for s in samples.index if s not in counts.columns]
        if missing_metadata or missing_counts:
            raise SchemaMismatchError(
                "Sample metadata and count columns do not match: "
                f"columns without metadata={missing_metadata}, "
                f"metadata rows without counts={missing_counts}"
            )

        non_numeric = [
            c for c in counts.columns if not pd.api.types.is_numeric_dtype(counts[c])
        ]
        if non_numeric:
            raise SchemaMismatchError(f"Non-numeric count columns: {non_numeric}")
        if counts.isna().to_numpy().any():
            raise SchemaMismatchError("Count matrix contains missing values")
        if (counts.to_numpy() < 0).any():
            raise SchemaMismatchError("Count matrix contains negative values")

        self.counts = counts
        self.samples = samples.loc[list(counts.columns)]

    @classmethod
    def from_arrays(
        cls,
        values,
        barcodes: Sequence[Hashable],
        sample_names: Sequence[str],
        metadata: Optional[pd.DataFrame] = None,
    ) -> "CountMatrix":
        """
        Build a CountMatrix from a 2D array of shape (barcodes, samples).

        Args:
            values: Array-like of counts
            barcodes: Barcode identifiers in library rank order
            sample_names: Sample identifiers, one per column
            metadata: Optional sample metadata indexed by sample name

        Returns:
            CountMatrix: New matrix
        """
        counts = pd.DataFrame(
            np.asarray(values), index=list(barcodes), columns=list(sample_names)
        )
        if metadata is None:
            metadata = pd.DataFrame(index=pd.Index(list(sample_names)))
        return cls(counts, metadata)

    @property
    def n_barcodes(self) -> int:
        return self.counts.shape[0]

    @property
    def n_samples(self) -> int:
        return self.counts.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.counts.shape

    @property
    def sample_names(self) -> List[str]:
        return list(self.counts.columns)

    @property
    def barcodes(self) -> List[Hashable]:
        return list(self.counts.index)

    @property
    def is_empty(self) -> bool:
        return self.n_barcodes == 0

    @property
    def is_integer(self) -> bool:
        return all(pd.api.types.is_integer_dtype(dt) for dt in self.counts.dtypes)

    def sample_totals(self) -> pd.Series:
        """Total count per sample column"""
        return self.counts.sum(axis=0)

    def degenerate_samples(self) -> List[str]:
        """Samples whose total count is zero"""
        totals = self.sample_totals()
        return [str(s) for s in totals.index[totals == 0]]

    def with_counts(self, counts: pd.DataFrame) -> "CountMatrix":
        """Derived matrix with new values over the same samples and metadata"""
        return CountMatrix(counts, self.samples, collapsed=self.collapsed)

    def subset_samples(self, names: Sequence[str]) -> "CountMatrix":
        """
        Select a subset of sample columns, keeping metadata in step.

        Raises:
            SchemaMismatchError: If a requested sample does not exist
        """
        names = [str(n) for n in names]
        unknown = [n for n in names if n not in self.counts.columns]
        if unknown:
            raise SchemaMismatchError(f"Unknown samples requested: {unknown}")
        return CountMatrix(
            self.counts.loc[:, names], self.samples.loc[names], collapsed=self.collapsed
        )

    def subset_barcodes(self, mask) -> "CountMatrix":
        """Keep the barcode rows selected by a boolean mask, preserving rank order"""
        return self.with_counts(self.counts.loc[np.asarray(mask, dtype=bool)])

    def drop_empty_barcodes(self) -> "CountMatrix":
        """Remove barcodes with zero counts in every sample"""
        return self.subset_barcodes((self.counts > 0).any(axis=1).to_numpy())

    def depth_summary(self) -> pd.DataFrame:
        """Per-sample sequencing depth and number of detected barcodes"""
        totals = self.sample_totals()
        return pd.DataFrame(
            {
                "total_reads": totals,
                "barcodes_detected": (self.counts > 0).sum(axis=0),
                "degenerate": totals == 0,
            }
        ).rename_axis(SAMPLE_INDEX_NAME)


@dataclass
class ThresholdConfig:
    """Noise-floor operating point"""

    mode: str = "absolute"
    value: float = 1.0
    min_samples: int = 1


@dataclass
class AnalysisConfig:
    """Parameters of one analysis over a count matrix"""

    name: str = "analysis"
    threshold: ThresholdConfig = field(default_factory=ThresholdConfig)
    normalization: str = "CPM"
    group_key: Optional[GroupKey] = None
    collapse_method: str = "mean"
    correlation_transform: str = "log1p"
    correlation_pairing: str = "first"
    correlation_threshold: float = 0.999
    dominance_threshold: float = 0.05
    percentile: float = 0.9
    sweep_values: List[float] = field(default_factory=list)
    sweep_min_samples: List[int] = field(default_factory=lambda: [1])
    condition_key: Optional[str] = None
    reference: Optional[str] = None
    treatment: Optional[str] = None
    dispersion: float = 0.1
    rarefy_depth: Optional[int] = None
    seed: int = 0


@dataclass
class ProcessingConfig:
    """Configuration for a full load, analyze and save run"""

    out_dir: str
    run_name: str
    metadata_file: str
    counts_dir: Optional[str] = None
    matrix_file: Optional[str] = None
    library_file: Optional[str] = None
    sample_column: str = "sample"
    file_column: str = "files"
    file_pattern: str = "{sample}.csv"
    barcode_column: str = "barcode"
    count_column: str = "count"
    log_file: Optional[str] = None
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)


class DiagnosticKind(str, Enum):
    DEGENERATE_SAMPLE = "DegenerateSample"
    INSUFFICIENT_REPLICATES = "InsufficientReplicates"
    POOR_REPLICATE_CORRELATION = "PoorReplicateCorrelation"


@dataclass
class Diagnostic:
    """A non-fatal data-quality condition surfaced for operator review"""

    kind: DiagnosticKind
    subject: str
    message: str
    stage: str = ""


@dataclass
class ReplicateCorrelation:
    """Per-group agreement between technical replicate columns"""

    coefficients: Dict[str, float]
    pairs: Dict[str, Tuple[str, str]]
    group_sizes: Dict[str, int]
    skipped: Dict[str, List[str]]
    transform: str = "log1p"
    pairing: str = "first"

    def below(self, threshold: float) -> Dict[str, float]:
        """
        Groups whose coefficient falls below a quality threshold.

        NaN coefficients are flagged as well since they cannot demonstrate
        agreement.
        """
        return {
            group: value
            for group, value in self.coefficients.items()
            if np.isnan(value) or value < threshold
        }

    def to_frame(self, threshold: Optional[float] = None) -> pd.DataFrame:
        rows = []
        flagged = self.below(threshold) if threshold is not None else {}
        for group, value in self.coefficients.items():
            first, second = self.pairs[group]
            rows.append(
                {
                    "group": group,
                    "sample_a": first,
                    "sample_b": second,
                    "n_replicates": self.group_sizes[group],
                    "correlation": value,
                    "flagged": group in flagged,
                }
            )
        columns = ["group", "sample_a", "sample_b", "n_replicates", "correlation", "flagged"]
        return pd.DataFrame(rows, columns=columns)


@dataclass
class PercentileBarcodes:
    """Per-sample minimal set of top barcodes explaining a fraction of reads"""

    percentile: float
    ranked: Dict[str, List[Hashable]]
    table: pd.DataFrame
    degenerate: List[str] = field(default_factory=list)

    @property
    def num_barcodes(self) -> pd.Series:
        return pd.Series(
            {sample: len(barcodes) for sample, barcodes in self.ranked.items()},
            name="NumBarcodes",
            dtype=int,
        ).rename_axis(SAMPLE_INDEX_NAME)

    def summary(self) -> pd.DataFrame:
        summary = self.num_barcodes.to_frame()
        summary["Degenerate"] = [s in self.degenerate for s in summary.index]
        return summary


@dataclass
class AnalysisResult:
    """Result of one analysis over a count matrix"""

    config: AnalysisConfig
    raw: CountMatrix
    filtered: CountMatrix
    normalized: CountMatrix
    collapsed: Optional[CountMatrix]
    diversity: pd.DataFrame
    dominant_barcodes: Dict[str, Set[Hashable]]
    dominant_table: pd.DataFrame
    percentile_barcodes: PercentileBarcodes
    threshold_sweep: Optional[pd.DataFrame] = None
    replicate_correlation: Optional[ReplicateCorrelation] = None
    differential_abundance: Optional[pd.DataFrame] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def analyzed(self) -> CountMatrix:
        """Matrix the composition statistics were computed from"""
        return self.collapsed if self.collapsed is not None else self.normalized

    def diagnostics_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "kind": d.kind.value,
                    "subject": d.subject,
                    "stage": d.stage,
                    "message": d.message,
                }
                for d in self.diagnostics
            ],
            columns=["kind", "subject", "stage", "message"],
        )
