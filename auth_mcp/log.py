"""
Structured JSON logging for the stdio server.

The MCP stdio transport owns stdout: every line written there must be a
protocol response. All diagnostics therefore go to stderr, one JSON object
per line, so MCP clients that capture the server's stderr (most of them write
it to a log file) get machine-readable records.

Structured fields are attached through the `auth_data` extra:

    logger.info("Session stored", extra={"auth_data": {"expires_in": 3600}})
"""

import json
import logging
import sys

from auth_mcp.config import Settings

LOGGER_NAME = "auth-mcp"


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,123", "level": "INFO", "logger": "auth-mcp.router",
         "message": "Tool call dispatched", "tool": "post_auth_signin", "classification": "login"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "auth_data"):
            log_entry.update(record.auth_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(config: Settings) -> logging.Logger:
    """
    Attach the JSON stderr handler to the package logger.

    `debug` wins over `log_level`. Returns the package logger so callers
    can log the startup banner through it.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONLogFormatter())

    level = logging.DEBUG if config.debug else getattr(logging, config.log_level.upper(), logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    # Never bubble up to a root handler that might write to stdout.
    logger.propagate = False
    return logger
