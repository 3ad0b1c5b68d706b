"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Optional

import structlog

LOG_LEVEL_ENV = "CHATTY_EDU_LOG_LEVEL"


def configure_logging(log_level: Optional[str] = None, json_logs: bool = False) -> None:
    """
    Route structlog and stdlib logging through one stderr handler.

    stdout is left alone so CLI commands that print JSON stay machine-readable.
    """
    level_name = (log_level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
