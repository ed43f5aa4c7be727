# =============================================================================
# tests/unit/test_logging.py
# Unit Tests for Logging Configuration
# =============================================================================

import logging

import pytest

from pharmacare_core.logging import LogContext, get_logger, setup_logging


class TestSetupLogging:

    def test_writes_log_file(self, tmp_path):
        setup_logging(log_filename="test.log", log_dir=tmp_path)
        get_logger("pharmacare_core.tests").info("hello from the till")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = (tmp_path / "test.log").read_text()
        assert "pharmacare_core.tests | INFO | hello from the till" in content
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_stdout_only(self):
        setup_logging(level=logging.DEBUG, log_to_file=False)
        assert all(not isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)

    def test_accepts_level_names(self):
        setup_logging(level="warning", log_to_file=False)
        assert logging.getLogger().level == logging.WARNING

    def test_rejects_unknown_level(self):
        with pytest.raises(ValueError):
            setup_logging(level="chatty", log_to_file=False)


class TestLogContext:

    def test_logs_start_and_completion(self, caplog):
        logger = get_logger("pharmacare_core.sync")
        with caplog.at_level(logging.INFO, logger="pharmacare_core.sync"):
            with LogContext(logger, "Syncing sales") as ctx:
                pass

        assert ctx.elapsed is not None and ctx.elapsed >= 0
        assert "Syncing sales... started" in caplog.text
        assert "Syncing sales... completed" in caplog.text

    def test_does_not_suppress_errors(self, caplog):
        logger = get_logger("pharmacare_core.sync")
        with pytest.raises(ValueError):
            with LogContext(logger, "Syncing sales"):
                raise ValueError("bad record")
        assert "failed" in caplog.text
