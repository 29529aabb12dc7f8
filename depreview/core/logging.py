"""Structured logging for the CLI: structlog on top of stdlib logging, on stderr."""

from __future__ import annotations

import logging
import logging.config
import os
import sys

import structlog


def setup_logging(level: str | None = None) -> None:
    """Configure structlog and stdlib logging.

    Reads from environment variables:
        DEPREVIEW_LOG_LEVEL   log level (default: INFO)
        DEPREVIEW_LOG_FORMAT  console | json (default: console)

    An explicit *level* wins over the environment. Everything is written to
    stderr; stdout carries only the report.
    """
    log_level = (level or os.environ.get("DEPREVIEW_LOG_LEVEL", "INFO")).upper()
    log_format = os.environ.get("DEPREVIEW_LOG_FORMAT", "console").lower()

    if log_format == "json":
        timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        timestamper = structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False)
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # contextvars carry the crate under review into every engine's events.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        timestamper,
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {
                "handlers": ["stderr"],
                "level": "WARNING",
            },
            "loggers": {
                "depreview": {"level": log_level},
            },
        }
    )
