"""Tests for command line parsing and the entry point."""

import pytest

from lintrace.infrastructure.argument_parser import ArgumentParser
from lintrace.main import main


@pytest.fixture
def base_args(count_files, tmp_path):
    return [
        "-o", str(tmp_path / "out"),
        "-n", "run1",
        "-m", count_files["metadata_file"],
        "-c", count_files["counts_dir"],
    ]


class TestParseArguments:
    def test_defaults(self, base_args, tmp_path):
        config = ArgumentParser().parse_arguments(base_args)

        assert config.run_name == "run1"
        assert config.analysis.threshold.mode == "absolute"
        assert config.analysis.threshold.value == 1.0
        assert config.analysis.normalization == "CPM"
        assert config.analysis.group_key is None
        assert config.analysis.sweep_values == []
        assert (tmp_path / "out").is_dir()

    def test_threshold_and_sweep_options(self, base_args):
        config = ArgumentParser().parse_arguments(
            base_args + ["-t", "relative", "-v", "0.001", "-s", "2",
                         "--sweep_values", "0.0001,0.001, 0.01", "--sweep_min_samples", "1,2"]
        )

        assert config.analysis.threshold.mode == "relative"
        assert config.analysis.threshold.min_samples == 2
        assert config.analysis.sweep_values == [0.0001, 0.001, 0.01]
        assert config.analysis.sweep_min_samples == [1, 2]

    def test_group_column(self, base_args):
        config = ArgumentParser().parse_arguments(base_args + ["-g", "group"])

        assert config.analysis.group_key == "group"

    def test_replicate_suffix(self, base_args):
        config = ArgumentParser().parse_arguments(base_args + ["--replicate_suffix", "_R[0-9]+"])

        assert config.analysis.group_key("day7_R12") == "day7"

    def test_strip_chars(self, base_args):
        config = ArgumentParser().parse_arguments(base_args + ["--strip_chars", "1"])

        assert config.analysis.group_key("day7A") == "day7"

    def test_zero_strip_chars_rejected(self, base_args):
        with pytest.raises(ValueError, match="n_chars"):
            ArgumentParser().parse_arguments(base_args + ["--strip_chars", "0"])

    def test_grouping_options_exclusive(self, base_args):
        with pytest.raises(SystemExit):
            ArgumentParser().parse_arguments(base_args + ["-g", "group", "--strip_chars", "1"])

    def test_invalid_percentile(self, base_args):
        with pytest.raises(ValueError, match="Invalid configuration"):
            ArgumentParser().parse_arguments(base_args + ["-p", "1.5"])

    def test_relative_threshold_must_be_proportion(self, base_args):
        with pytest.raises(ValueError):
            ArgumentParser().parse_arguments(base_args + ["-t", "relative", "-v", "5"])

    def test_missing_metadata_file(self, count_files, tmp_path):
        with pytest.raises(ValueError):
            ArgumentParser().parse_arguments(
                ["-o", str(tmp_path), "-n", "x", "-m", str(tmp_path / "absent.csv"),
                 "-c", count_files["counts_dir"]]
            )

    def test_requires_an_input(self, count_files, tmp_path):
        with pytest.raises(SystemExit):
            ArgumentParser().parse_arguments(
                ["-o", str(tmp_path), "-n", "x", "-m", count_files["metadata_file"]]
            )


class TestMain:
    def test_successful_run(self, base_args, tmp_path):
        assert main(base_args + ["-g", "group"]) == 0
        assert (tmp_path / "out" / "run1_analysis_Collapsed_Counts.csv").exists()

    def test_failure_returns_one(self, base_args):
        assert main(base_args + ["-v", "100000"]) == 1
