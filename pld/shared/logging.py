"""structlog configuration: JSON lines for the service, plain console for the CLI."""

import logging
import sys
from typing import TextIO

import structlog


def setup_logging(
    level: str = "INFO",
    json: bool = True,
    stream: TextIO | None = None,
    cache_loggers: bool = True,
) -> None:
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    stream = stream or sys.stdout
    logging.basicConfig(format="%(message)s", stream=stream, level=log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
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
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=cache_loggers,
    )
