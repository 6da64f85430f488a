"""
structlog configuration.

`configure_logging()` is called once by `main.create_app()`. Output is
JSON lines (`LOG_FORMAT=json`) or colored console text
(`LOG_FORMAT=console`), filtered at `LOG_LEVEL`.
"""

import logging
import sys

import structlog

from settings import settings


def build_processors() -> list:
    """The structlog processor chain, renderer last."""

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        # request outcomes carry their own `timestamp`
        structlog.processors.TimeStamper(fmt="iso", key="logged_at"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def configure_logging() -> None:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=build_processors(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and psycopg log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
