"""
Structured logging configuration using structlog wrapping stdlib.

Console output while developing, JSON lines when MEETGRID_LOG_FORMAT=json
(e.g. when the sync engine runs inside a longer-lived service).

Usage:
    from meetgrid.logging_config import get_logger, setup_logging

    setup_logging()
    logger = get_logger(__name__)
    logger.info("commit_succeeded", meeting_id="abc")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

import structlog


def add_component(logger, method_name, event_dict):
    """Tag events with the meetgrid subsystem (calendar, sync, interaction, cli)."""
    name = event_dict.get("logger") or ""
    parts = name.split(".")
    if parts[0] == "meetgrid" and len(parts) > 1:
        event_dict.setdefault("component", parts[1])
    return event_dict


def setup_logging(
    level: str | None = None,
    json_output: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    if level is None:
        level = os.environ.get("MEETGRID_LOG_LEVEL", "INFO")

    if json_output is None:
        json_output = os.environ.get("MEETGRID_LOG_FORMAT", "").lower() == "json"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_component,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


__all__ = ["add_component", "get_logger", "setup_logging"]
