"""Tests for logging and result saving."""

import logging

import pandas as pd

from lintrace.infrastructure.data.data_saver import CountDataSaver
from lintrace.infrastructure.logger import LOGGER_NAME, Logger


class TestLogger:
    def test_handlers_attached_once(self, tmp_path):
        log_file = str(tmp_path / "run.log")
        Logger(log_file)
        Logger(log_file)
        Logger()

        handlers = logging.getLogger(LOGGER_NAME).handlers
        file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
        stream_handlers = [h for h in handlers if type(h) is logging.StreamHandler]
        assert len(file_handlers) == 1
        assert len(stream_handlers) == 1

        for handler in file_handlers:
            logging.getLogger(LOGGER_NAME).removeHandler(handler)
            handler.close()

    def test_diagnostic_logged_as_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
            Logger().log_diagnostic("DegenerateSample", "S2", "sample has no reads")

        assert "DegenerateSample [S2]: sample has no reads" in caplog.text


class TestDataSaver:
    def test_save_matrix_and_metadata(self, replicate_matrix, tmp_path):
        saver = CountDataSaver()

        saver.save_matrix(replicate_matrix, str(tmp_path / "nested" / "counts.csv"))
        saver.save_metadata(replicate_matrix, str(tmp_path / "nested" / "samples.csv"))

        counts = pd.read_csv(tmp_path / "nested" / "counts.csv", index_col=0)
        samples = pd.read_csv(tmp_path / "nested" / "samples.csv", index_col=0)
        assert counts.index.name == "barcode"
        assert counts["R2"].tolist() == [12, 18, 30]
        assert samples.loc["R2", "lane"] == "L2"
