"""Tests for the JSON log formatter and stderr-only logging setup (auth_mcp/log.py)."""

import json
import logging
import sys

import pytest

from auth_mcp.config import Settings
from auth_mcp.log import LOGGER_NAME, JSONLogFormatter, configure_logging


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("auth-mcp.router", logging.INFO, __file__, 1, "Tool call %s", ("dispatched",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_single_line_json_with_auth_data():
    line = JSONLogFormatter().format(make_record(auth_data={"tool": "post_auth_signin", "bearer": False}))

    entry = json.loads(line)
    assert "\n" not in line
    assert entry["level"] == "INFO"
    assert entry["logger"] == "auth-mcp.router"
    assert entry["message"] == "Tool call dispatched"
    assert entry["tool"] == "post_auth_signin"
    assert entry["bearer"] is False


def test_logs_go_to_stderr_only():
    logger = configure_logging(Settings(_env_file=None, log_level="info"))

    handlers = logger.handlers
    assert logger.name == LOGGER_NAME
    assert len(handlers) == 1
    assert handlers[0].stream is sys.stderr
    assert logger.propagate is False
    assert logger.level == logging.INFO


def test_debug_overrides_level():
    logger = configure_logging(Settings(_env_file=None, log_level="error", debug=True))

    assert logger.level == logging.DEBUG
