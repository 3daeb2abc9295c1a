"""Structured logging setup for the harvester CLI."""

import logging
import sys

import structlog


def configure_logging(
    level: str = "INFO", json_output: bool = False, cache_loggers: bool = True
) -> None:
    """Configure structlog once for the process.

    Log lines go to the stderr stream current at configure time, so that
    command output on stdout stays parseable.

    Args:
        level: Minimum log level name (DEBUG, INFO, WARNING, ERROR)
        json_output: Render JSON lines instead of the console format
        cache_loggers: Let module-level loggers bind on first use. Disable
                       when the process will reconfigure logging or swap
                       stderr later (test runs).
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=cache_loggers,
    )
