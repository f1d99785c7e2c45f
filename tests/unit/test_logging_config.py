"""Tests for logging configuration helpers."""

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest.mock import MagicMock, patch

from spa_server.bootstrap.logging_setup import (
    CorrelationIdFilter,
    JsonFormatter,
    configure_logging,
)


def _sample_record() -> logging.LogRecord:
    record = logging.LogRecord(
        name="spa_server.server",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg="format test",
        args=(),
        exc_info=None,
    )
    record.correlation_id = "test-id-123"
    record.component = "server"
    return record


def test_configure_logging_defaults_to_text_on_stdout():
    """Text output carries level, correlation id and logger name."""
    logger = configure_logging("DEBUG", "stdout")

    assert logger.logger.name == "spa_server"
    assert logger.logger.level == logging.DEBUG
    assert logger.logger.propagate is False
    assert len(logger.logger.handlers) == 1

    handler = logger.logger.handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    formatted = handler.formatter.format(_sample_record())
    assert "INFO [test-id-123] spa_server.server :: format test" in formatted


def test_configure_logging_json_format():
    """The JSON formatter is installed on request."""
    logger = configure_logging("INFO", "stdout", use_json=True)

    formatter = logger.logger.handlers[0].formatter
    assert isinstance(formatter, JsonFormatter)
    log_data = json.loads(formatter.format(_sample_record()))
    assert log_data["component"] == "server"
    assert log_data["correlation_id"] == "test-id-123"


def test_configure_logging_file_destination(tmp_path: Path):
    """A file destination gets a rotating handler and persisted writes."""
    destination = tmp_path / "nested" / "server.log"
    logger = configure_logging("WARNING", destination.as_posix())

    assert logger.logger.level == logging.WARNING
    handler = logger.logger.handlers[0]
    assert isinstance(handler, RotatingFileHandler)
    assert handler.baseFilename == destination.as_posix()

    logging.getLogger("spa_server.server").warning("file log test")
    handler.flush()
    assert "file log test" in destination.read_text()


def test_configure_logging_replaces_previous_handlers():
    """Reconfiguring never stacks handlers."""
    configure_logging("INFO", "stdout")
    logger = configure_logging("INFO", "stdout")

    assert len(logger.logger.handlers) == 1


def test_unknown_level_falls_back_to_info():
    logger = configure_logging("CHATTY", "stdout")

    assert logger.logger.level == logging.INFO


def test_correlation_id_filter_inserts_placeholder_when_missing():
    """Filter should default correlation_id to '-' for bare records."""
    log_filter = CorrelationIdFilter()
    record = logging.LogRecord(
        name="spa_server.server",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg="missing id",
        args=(),
        exc_info=None,
    )

    assert log_filter.filter(record)
    assert record.correlation_id == "-"


def test_configure_logging_emits_event():
    """configure_logging announces the resulting setup."""
    with patch("spa_server.bootstrap.logging_setup._build_handler") as mock_build:
        mock_handler = MagicMock()
        mock_handler.level = logging.INFO
        mock_build.return_value = mock_handler

        configure_logging("INFO", "stdout", use_json=True)

        assert mock_handler.handle.called
        record = mock_handler.handle.call_args[0][0]

        assert record.msg == "Logging configured"
        assert record.levelno == logging.INFO
        assert getattr(record, "event", None) == "logging_configured"
        assert getattr(record, "destination", None) == "stdout"
        assert getattr(record, "use_json", None) is True
