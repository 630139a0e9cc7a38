"""Tests for logging configuration."""

import logging

import pytest

from billing_recon.services.logging import LOGGER_NAME, get_log_level, setup_logging


class TestSetupLogging:
    """Dual stdout + file handlers on the package logger."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        logger = logging.getLogger(LOGGER_NAME)
        original_handlers = logger.handlers.copy()
        original_level = logger.level
        yield
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        for handler in original_handlers:
            logger.addHandler(handler)
        logger.setLevel(original_level)

    def test_creates_log_directory(self, tmp_path):
        log_file = tmp_path / "nested" / "reconcile.log"

        setup_logging(str(log_file))

        assert log_file.parent.exists()

    def test_stdout_and_file_handlers(self, tmp_path):
        logger = setup_logging(str(tmp_path / "reconcile.log"))

        assert logger.name == LOGGER_NAME
        assert len(logger.handlers) == 2
        assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)

    def test_stdout_only(self):
        logger = setup_logging(None)

        assert len(logger.handlers) == 1

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path):
        setup_logging(str(tmp_path / "reconcile.log"))
        logger = setup_logging(str(tmp_path / "reconcile.log"))

        assert len(logger.handlers) == 2

    def test_format_written_to_file(self, tmp_path):
        log_file = tmp_path / "reconcile.log"
        logger = setup_logging(str(log_file))

        logger.info("Reconciling unit 101")
        for handler in logger.handlers:
            handler.flush()

        content = log_file.read_text()
        assert "INFO Reconciling unit 101" in content
        assert content.startswith("[")


class TestLogLevel:
    def test_default_is_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert get_log_level() == logging.INFO

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert get_log_level() == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        assert get_log_level() == logging.INFO
