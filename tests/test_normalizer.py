"""Tests for depth normalization."""

import numpy as np
import pandas as pd
import pytest

from lintrace.domain.models import CountMatrix
from lintrace.domain.services.normalizer import Normalizer


@pytest.fixture
def normalizer():
    return Normalizer()


class TestCPM:
    def test_column_sums_are_one_million(self, normalizer, lineage_matrix):
        normalized = normalizer.normalize(lineage_matrix, "CPM")

        sums = normalized.counts.sum(axis=0)
        assert np.allclose(sums.to_numpy(), 1_000_000)

    def test_example_ratios(self, normalizer, example_matrix):
        normalized = normalizer.normalize(example_matrix)

        assert normalized.counts.loc["B1", "S1"] == pytest.approx(666_666.667, abs=1e-2)
        assert normalized.counts.loc["B2", "S1"] == pytest.approx(333_333.333, abs=1e-2)
        assert normalized.counts.loc["B3", "S1"] == 0

    def test_zero_total_sample_maps_to_zero(self, normalizer):
        matrix = CountMatrix.from_arrays([[5, 0], [15, 0]], ["B1", "B2"], ["S1", "S2"])

        normalized = normalizer.normalize(matrix, "CPM")

        assert not normalized.counts.isna().to_numpy().any()
        assert (normalized.counts["S2"] == 0).all()
        assert normalized.counts["S1"].sum() == pytest.approx(1_000_000)
        assert normalized.degenerate_samples() == ["S2"]

    def test_returns_new_float_matrix(self, normalizer, example_matrix):
        before = example_matrix.counts.copy()

        normalized = normalizer.normalize(example_matrix)

        assert not normalized.is_integer
        assert normalized.barcodes == example_matrix.barcodes
        assert normalized.sample_names == example_matrix.sample_names
        pd.testing.assert_frame_equal(example_matrix.counts, before)


class TestOtherMethods:
    def test_proportion_sums_to_one(self, normalizer, lineage_matrix):
        normalized = normalizer.normalize(lineage_matrix, "proportion")

        assert np.allclose(normalized.counts.sum(axis=0).to_numpy(), 1.0)

    def test_rarefy_to_minimum_depth(self, normalizer, lineage_matrix):
        depth = int(lineage_matrix.sample_totals().min())

        rarefied = normalizer.normalize(lineage_matrix, "rarefy", seed=1)

        assert rarefied.is_integer
        assert (rarefied.sample_totals() == depth).all()
        assert (rarefied.counts <= lineage_matrix.counts).all().all()

    def test_rarefy_is_reproducible(self, normalizer, lineage_matrix):
        first = normalizer.rarefy(lineage_matrix, depth=5000, seed=7)
        second = normalizer.rarefy(lineage_matrix, depth=5000, seed=7)

        pd.testing.assert_frame_equal(first.counts, second.counts)

    def test_rarefy_keeps_shallow_samples(self, normalizer):
        matrix = CountMatrix.from_arrays([[50, 2], [50, 1]], ["B1", "B2"], ["S1", "S2"])

        rarefied = normalizer.rarefy(matrix, depth=10)

        assert rarefied.counts["S1"].sum() == 10
        assert rarefied.counts["S2"].tolist() == [2, 1]

    def test_rarefy_requires_integers(self, normalizer, example_matrix):
        cpm = normalizer.normalize(example_matrix)
        with pytest.raises(ValueError, match="integer"):
            normalizer.rarefy(cpm)

    def test_unknown_method(self, normalizer, example_matrix):
        with pytest.raises(ValueError, match="Unknown normalization"):
            normalizer.normalize(example_matrix, "TMM")
