"""Unit tests for logging infrastructure."""
import logging

from rich.logging import RichHandler

from vtp.infrastructure.logging import setup_logging


def test_setup_logging_creates_log_file(tmp_path):
    """Test that setup_logging creates transcoding.log."""
    logger = setup_logging(tmp_path, debug=False)

    assert isinstance(logger, logging.Logger)
    assert (tmp_path / "transcoding.log").exists()


def test_setup_logging_debug_mode(tmp_path):
    logger = setup_logging(tmp_path, debug=True)

    assert logger.getEffectiveLevel() == logging.DEBUG


def test_setup_logging_normal_mode(tmp_path):
    logger = setup_logging(tmp_path, debug=False)

    assert logger.getEffectiveLevel() == logging.INFO


def test_setup_logging_creates_missing_dir(tmp_path):
    log_dir = tmp_path / "missing" / "logs"

    setup_logging(log_dir)

    assert (log_dir / "transcoding.log").exists()


def test_setup_logging_custom_log_path(tmp_path):
    custom = tmp_path / "elsewhere" / "vtp.log"

    setup_logging(tmp_path / "store", log_path=custom)
    logging.getLogger("vtp.test").info("custom path entry")

    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "custom path entry" in custom.read_text()


def test_setup_logging_console_adds_rich_handler(tmp_path):
    setup_logging(tmp_path, console=True)

    assert any(isinstance(h, RichHandler) for h in logging.getLogger().handlers)
