"""
Tests for setup_logging
"""

import logging
import logging.handlers

import pytest

from ccbell.config import LoggingConfig
from ccbell.logging_setup import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestSetupLogging:
    """Тесты настройки логирования"""

    def test_file_handlers(self, tmp_path, restore_root_logger):
        config = LoggingConfig(level="WARNING", dir=str(tmp_path), console=False)
        setup_logging(config)

        handlers = restore_root_logger.handlers
        assert len(handlers) == 2
        assert all(isinstance(h, logging.handlers.RotatingFileHandler) for h in handlers)
        assert restore_root_logger.level == logging.WARNING

        logging.getLogger("ccbell.test").error("disk full")
        for h in handlers:
            h.flush()
        assert "disk full" in (tmp_path / "ccbell.log").read_text(encoding="utf-8")
        assert "disk full" in (tmp_path / "errors.log").read_text(encoding="utf-8")

    def test_error_file_only_gets_errors(self, tmp_path, restore_root_logger):
        setup_logging(LoggingConfig(level="INFO", dir=str(tmp_path), console=False))

        logging.getLogger("ccbell.test").info("warning tier armed")
        for h in restore_root_logger.handlers:
            h.flush()
        assert "armed" in (tmp_path / "ccbell.log").read_text(encoding="utf-8")
        assert (tmp_path / "errors.log").read_text(encoding="utf-8") == ""

    def test_console_only(self, restore_root_logger):
        setup_logging(LoggingConfig(console=True), debug=True)

        handlers = restore_root_logger.handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("asyncio").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging(LoggingConfig(level="LOUD", console=False))
        assert restore_root_logger.level == logging.INFO
        assert restore_root_logger.handlers == []
