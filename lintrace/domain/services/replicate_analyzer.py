"""
Technical replicate handling: grouping, correlation and collapsing.

Replicate groups are resolved from an explicit grouping key, either a sample
metadata column or a function of the sample name. ``strip_suffix`` and
``suffix_pattern`` build such functions for naming conventions where the
replicate tag is part of the sample name.
"""

import itertools
import re
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.stats import pearsonr

from lintrace.domain.exceptions import (
    CollapsedMatrixError,
    EmptyMatrixError,
    SchemaMismatchError,
)
from lintrace.domain.models import CountMatrix, GroupKey, ReplicateCorrelation
from lintrace.infrastructure.logger import Logger


CORRELATION_TRANSFORMS = ("log1p", "none")
PAIRING_POLICIES = ("first", "min")
COLLAPSE_METHODS = ("mean", "sum")


def strip_suffix(n_chars: int = 1) -> Callable[[str], str]:
    """Group key dropping a fixed number of trailing characters (``A1`` -> ``A``)"""
    if n_chars < 1:
        raise ValueError("n_chars must be at least 1")

    def key(sample: str) -> str:
        if len(sample) <= n_chars:
            raise SchemaMismatchError(
                f"Sample name '{sample}' is too short to strip {n_chars} character(s)"
            )
        return sample[:-n_chars]

    return key


def suffix_pattern(pattern: str) -> Callable[[str], str]:
    """Group key removing a regex match from the end of the sample name"""
    regex = re.compile(rf"(?:{pattern})$")

    def key(sample: str) -> str:
        group = regex.sub("", sample, count=1)
        if not group:
            raise SchemaMismatchError(
                f"Suffix pattern '{pattern}' leaves no group name for sample '{sample}'"
            )
        return group

    return key


def resolve_groups(matrix: CountMatrix, group_key: GroupKey) -> "OrderedDict[str, List[str]]":
    """
    Partition sample columns into replicate groups.

    Groups are ordered by first appearance and members keep matrix column
    order, so every consumer sees the same partition.

    Args:
        matrix: Count matrix
        group_key: Metadata column name or callable on the sample name

    Returns:
        OrderedDict[str, List[str]]: Group name to member samples
    """
    if callable(group_key):
        labels = [str(group_key(sample)) for sample in matrix.sample_names]
    else:
        if group_key not in matrix.samples.columns:
            raise SchemaMismatchError(
                f"Grouping column '{group_key}' not found in sample metadata"
            )
        column = matrix.samples[group_key]
        if column.isna().any():
            missing = list(column.index[column.isna()])
            raise SchemaMismatchError(
                f"Grouping column '{group_key}' is missing for samples {missing}"
            )
        labels = [str(v) for v in column.tolist()]

    groups: "OrderedDict[str, List[str]]" = OrderedDict()
    for sample, label in zip(matrix.sample_names, labels):
        groups.setdefault(label, []).append(sample)
    return groups


class ReplicateCorrelator:
    """Quantifies agreement between technical replicate columns"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def correlate(
        self,
        matrix: CountMatrix,
        group_key: GroupKey,
        transform: str = "log1p",
        pairing: str = "first",
    ) -> ReplicateCorrelation:
        """
        Pearson correlation between replicate columns of each group.

        With ``pairing="first"`` the first two members (in matrix column order)
        are compared. With ``pairing="min"`` every member pair is compared and
        the lowest coefficient is reported. Groups with a single member are
        skipped and listed in the result.

        Args:
            matrix: Per-replicate count matrix
            group_key: Metadata column name or callable on the sample name
            transform: "log1p" or "none", applied before correlating
            pairing: "first" or "min"

        Returns:
            ReplicateCorrelation: Coefficients per group
        """
        if matrix.collapsed:
            raise CollapsedMatrixError(
                "Replicates were already collapsed; correlation needs per-replicate columns"
            )
        if transform not in CORRELATION_TRANSFORMS:
            raise ValueError(f"Unknown transform '{transform}', expected one of {CORRELATION_TRANSFORMS}")
        if pairing not in PAIRING_POLICIES:
            raise ValueError(f"Unknown pairing '{pairing}', expected one of {PAIRING_POLICIES}")

        groups = resolve_groups(matrix, group_key)
        values = matrix.counts.astype(float)
        if transform == "log1p":
            values = np.log1p(values)

        coefficients: Dict[str, float] = {}
        pairs: Dict[str, Tuple[str, str]] = {}
        sizes: Dict[str, int] = {}
        skipped: Dict[str, List[str]] = {}

        for group, members in groups.items():
            if len(members) < 2:
                skipped[group] = list(members)
                self.logger.log_diagnostic(
                    "InsufficientReplicates", group, f"only {len(members)} replicate, not correlated"
                )
                continue

            if pairing == "first":
                candidates = [(members[0], members[1])]
            else:
                candidates = list(itertools.combinations(members, 2))

            scored = [
                (self._pearson(values[a].to_numpy(), values[b].to_numpy(), group), (a, b))
                for a, b in candidates
            ]
            finite = [item for item in scored if not np.isnan(item[0])]
            coefficient, pair = min(finite, key=lambda item: item[0]) if finite else scored[0]

            coefficients[group] = float(coefficient)
            pairs[group] = pair
            sizes[group] = len(members)
            self.logger.log_statistics(f"Replicate correlation {group}", coefficient)

        return ReplicateCorrelation(
            coefficients=coefficients,
            pairs=pairs,
            group_sizes=sizes,
            skipped=skipped,
            transform=transform,
            pairing=pairing,
        )

    def _pearson(self, x: np.ndarray, y: np.ndarray, group: str) -> float:
        """Pearson r over barcodes observed in at least one of the two columns"""
        observed = (x > 0) | (y > 0)
        x, y = x[observed], y[observed]
        if len(x) < 2 or np.std(x) == 0 or np.std(y) == 0:
            self.logger.log_warning(
                f"Replicate group {group}: not enough variation to compute a correlation"
            )
            return float("nan")
        r, _ = pearsonr(x, y)
        return float(r)


class ReplicateCollapser:
    """Merges technical replicate columns into one logical sample"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger if logger is not None else Logger()

    def collapse(
        self, matrix: CountMatrix, group_key: GroupKey, method: str = "mean"
    ) -> CountMatrix:
        """
        Collapse replicate columns into one column per group.

        Metadata fields that are constant within a group are carried over.
        Fields that vary are left missing for that group and listed in the
        ``ambiguous_covariates`` column; fields ambiguous in every group are
        dropped. ``n_replicates`` records the group size.

        Args:
            matrix: Per-replicate count matrix
            group_key: Metadata column name or callable on the sample name
            method: "mean" (float result) or "sum"

        Returns:
            CountMatrix: Collapsed matrix indexed by group name
        """
        if matrix.collapsed:
            raise CollapsedMatrixError("Replicates were already collapsed")
        if matrix.is_empty:
            raise EmptyMatrixError("Cannot collapse a matrix without barcodes")
        if method not in COLLAPSE_METHODS:
            raise ValueError(f"Unknown collapse method '{method}', expected one of {COLLAPSE_METHODS}")

        groups = resolve_groups(matrix, group_key)
        for group, members in groups.items():
            if len(members) < 2:
                self.logger.log_diagnostic(
                    "InsufficientReplicates", group, "single replicate carried over unchanged"
                )

        labels = np.empty(matrix.n_samples, dtype=object)
        for group, members in groups.items():
            for member in members:
                labels[matrix.sample_names.index(member)] = group

        grouped = matrix.counts.T.groupby(labels, sort=False)
        merged = grouped.sum() if method == "sum" else grouped.mean()
        collapsed_counts = merged.T.reindex(columns=list(groups.keys()))
        collapsed_counts.index = matrix.counts.index

        metadata = self._collapse_metadata(matrix.samples, groups, group_key)

        collapsed = CountMatrix(collapsed_counts, metadata, collapsed=True)
        self.logger.log_step(
            "Replicate collapsing",
            f"{matrix.n_samples} columns -> {collapsed.n_samples} groups ({method})",
        )
        return collapsed

    def _collapse_metadata(
        self,
        samples: pd.DataFrame,
        groups: "OrderedDict[str, List[str]]",
        group_key: GroupKey,
    ) -> pd.DataFrame:
        """Carry over covariates shared by all members of each group"""
        fields = [c for c in samples.columns if c != group_key]
        rows = []
        for group, members in groups.items():
            member_rows = samples.loc[members, fields]
            row = {"n_replicates": len(members)}
            ambiguous = []
            for field_name in fields:
                values = member_rows[field_name]
                if values.nunique(dropna=False) == 1:
                    row[field_name] = values.iloc[0]
                else:
                    row[field_name] = np.nan
                    ambiguous.append(field_name)
            row["ambiguous_covariates"] = ",".join(ambiguous)
            rows.append(row)
            if ambiguous:
                self.logger.log_warning(
                    f"Group {group}: covariates differ between replicates and were not carried over: {ambiguous}"
                )

        metadata = pd.DataFrame(rows, index=pd.Index(list(groups.keys())))
        always_ambiguous = [
            f for f in fields if all(f in r["ambiguous_covariates"].split(",") for r in rows)
        ]
        if always_ambiguous:
            self.logger.log_step(
                "Metadata collapsing", f"Dropped covariates varying in every group: {always_ambiguous}"
            )
        return metadata.drop(columns=always_ambiguous)
