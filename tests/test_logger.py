"""
Tests for package logging.
"""

import logging

import pytest

from pyecosystem.core.ecopath import ecopath
from pyecosystem.logger import (
    console_handler,
    get_logger,
    log_to_file,
    logger,
    set_log_level,
)


class TestLogger:

    def test_child_names(self):
        assert get_logger('ecosim').name == 'pyecosystem.ecosim'
        assert get_logger() is logger

    def test_console_defaults_to_warnings(self):
        assert console_handler.level == logging.WARNING

    def test_set_log_level(self):
        try:
            set_log_level("DEBUG")
            assert console_handler.level == logging.DEBUG
        finally:
            set_log_level(logging.WARNING)

    def test_solver_trace(self, two_group_web, caplog):
        with caplog.at_level(logging.DEBUG, logger='pyecosystem'):
            ecopath(two_group_web)

        messages = [r.getMessage() for r in caplog.records]
        assert "Iteration 1" in messages
        assert any("Grazer" in m for m in messages)


class TestLogToFile:

    @pytest.fixture
    def handler(self, tmp_path):
        handler = log_to_file(tmp_path / "logs" / "run.log")
        yield handler
        logger.removeHandler(handler)
        handler.close()

    def test_writes_records(self, handler, tmp_path):
        get_logger('ecosim').debug("t = %10.2f", 1.0)
        handler.flush()

        text = (tmp_path / "logs" / "run.log").read_text()
        assert "pyecosystem.ecosim - DEBUG - t =       1.00" in text
