"""Logging utilities for MCP Sandbox Exec."""

import logging
import sys

from pythonjsonlogger import jsonlogger

# HTTP clients used by the e2b SDK log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "e2b", "e2b.api")

JSON_FIELDS = "%(timestamp)s %(level)s %(name)s %(message)s"
TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format.lower() == "json":
        return jsonlogger.JsonFormatter(
            JSON_FIELDS,
            rename_fields={"levelname": "level", "asctime": "timestamp"},
            timestamp=True,
        )
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure root logging for the server.

    Records go to stderr, since stdout carries the protocol stream when the
    server runs over the stdio transport. Context such as ``sandbox_id`` and
    ``cmd_id`` is passed per call through ``extra`` and shows up as fields in
    JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type (json or text)
    """
    level = getattr(logging, log_level.upper())

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(_build_formatter(log_format))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    sdk_level = level if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name (typically __name__)."""
    return logging.getLogger(name)
