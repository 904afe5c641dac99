"""Tests for structured logging setup."""

import json
import logging

import pytest
import structlog

from meditime.core import logging as meditime_logging
from meditime.core.logging import LogContext, configure_logging, get_logger, is_configured


@pytest.fixture
def restore_logging():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    logging.getLogger().handlers.clear()
    logging.getLogger("meditime").setLevel(logging.NOTSET)
    meditime_logging._configured = False


def test_json_output(restore_logging, capsys):
    configure_logging(level="INFO", format="json", force=True)

    with LogContext(job="alice/Aspirin"):
        get_logger("meditime.test").info("notification_sent", device_label="default")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "notification_sent"
    assert record["device_label"] == "default"
    assert record["job"] == "alice/Aspirin"
    assert record["level"] == "info"
    assert record["logger"] == "meditime.test"
    assert "timestamp" in record


def test_level_filters(restore_logging, capsys):
    configure_logging(level="WARNING", format="json", force=True)

    get_logger("meditime.test").info("hidden")
    get_logger("meditime.test").warning("shown")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "shown" in err


def test_configure_once(restore_logging):
    configure_logging(format="json", force=True)
    assert is_configured()

    # Without force the first configuration stays in place.
    configure_logging(format="console")
    assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)


def test_log_context_unbinds():
    with LogContext(user_id="u-1"):
        assert structlog.contextvars.get_contextvars()["user_id"] == "u-1"

    assert "user_id" not in structlog.contextvars.get_contextvars()
