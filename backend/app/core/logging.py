"""structlog setup shared by the API process and the CLI scripts."""

from __future__ import annotations

import logging
import sys

import structlog

from app.core.config import settings


def configure_logging(json_logs: bool | None = None, level: str | None = None) -> None:
    """Install structlog processors once per process.

    Console rendering by default; JSON lines when ``json_logs`` (or
    ``settings.log_json``) is set.
    """
    json_logs = settings.log_json if json_logs is None else json_logs
    level_name = (level or settings.log_level).upper()

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level_name)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
