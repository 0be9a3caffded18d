"""Logging configuration: JSON lines by default, plain text for local runs."""

import logging
import sys
from typing import Optional, TextIO

from pythonjsonlogger import jsonlogger


LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'

# Chatty libraries kept at WARNING unless the exporter itself runs at DEBUG
LIBRARY_LOGGERS = ("httpx", "httpcore", "apscheduler")


def _make_formatter(fmt: str) -> logging.Formatter:
    if fmt == "text":
        return logging.Formatter(LOG_FORMAT)
    return jsonlogger.JsonFormatter(LOG_FORMAT, timestamp=True)


def setup_logger(
    name: str = "bridge_vaults_exporter",
    level: str = "INFO",
    fmt: str = "json",
    stream: Optional[TextIO] = None
) -> logging.Logger:
    """
    Configure the exporter logger.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: "json" for structured lines, "text" for plain lines
        stream: Output stream (stdout by default)

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(_make_formatter(fmt))
    logger.addHandler(handler)

    logger.propagate = False

    return logger


def apply_logging_config(logger: logging.Logger, config, level_override: Optional[str] = None) -> logging.Logger:
    """
    Reconfigure ``logger`` from the ``logging`` section of the config file.

    Args:
        logger: Logger created by setup_logger
        config: LoggingConfig with ``level`` and ``format``
        level_override: Level from the command line, wins over the config

    Returns:
        logging.Logger: The reconfigured logger
    """
    level = (level_override or config.level).upper()
    logger = setup_logger(logger.name, level, config.format)

    library_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    return logger
