"""
Redis Mutex - Logging Setup

structlog configuration for processes embedding the library (the
maintenance CLI calls this; library code only ever calls get_logger).
"""

import logging

import structlog


def configure_logging(level: str = "info", json_output: bool = False) -> None:
    """
    Configure structlog for console or JSON output.

    Args:
        level: Minimum log level name (debug, info, warning, error)
        json_output: Render events as JSON lines instead of console text
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
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
        cache_logger_on_first_use=False,
    )
