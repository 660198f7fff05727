"""
krunk Logging Module

Leveled diagnostic logging to stderr, either as console lines or as JSON
lines. Module loggers use the standard library; structlog loggers from
get_logger() are routed through the same handler so both end up in one
stream with the same format, extra fields and bound context included.
"""

import logging
import sys
from typing import Optional, TextIO

import structlog
from pythonjsonlogger import jsonlogger

from krunk.core.error_handling import ConfigurationError

JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
HANDLER_NAME = "krunk"


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

def _console_formatter() -> logging.Formatter:
    """key=value console lines; stdlib ``extra`` fields are rendered too."""
    return structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        ],
    )


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    stream: Optional[TextIO] = None,
):
    """
    Configure stdlib and structlog logging for a krunk run.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "console" for human-readable lines, "json" for JSON lines
        stream: Output stream (default: stderr)

    Raises:
        ConfigurationError: Unknown level or format
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {log_level!r}", component="logging")
    if log_format not in ("console", "json"):
        raise ConfigurationError(f"Unknown log format: {log_format!r}", component="logging")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(HANDLER_NAME)
    if log_format == "json":
        handler.setFormatter(jsonlogger.JsonFormatter(fmt=JSON_FORMAT))
    else:
        handler.setFormatter(_console_formatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Reset context from any previous run in this process
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)


def bind_context(**context):
    """Add context to all future log entries"""
    structlog.contextvars.bind_contextvars(**context)


def clear_context():
    """Clear all context variables"""
    structlog.contextvars.clear_contextvars()
