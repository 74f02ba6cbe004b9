"""Logging setup with per-request context for the analyzer service."""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any

import structlog

from .config import LoggingSettings

CONTEXT_FIELDS = ("request_id", "appid")


class RequestContextFilter(logging.Filter):
    """Copy the bound structlog context onto stdlib records."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = structlog.contextvars.get_contextvars()
        for field in CONTEXT_FIELDS:
            setattr(record, field, context.get(field, "-"))
        return True


def bind_request_context(request_id: str, **values: Any) -> None:
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **values)


def configure_logging(settings: LoggingSettings) -> None:
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level_value = getattr(logging, settings.level.upper(), logging.INFO)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": {
                "plain": {
                    "format": "%(asctime)s %(levelname)s %(name)s [%(request_id)s %(appid)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                    "filters": ["request_context"],
                    "level": settings.level,
                },
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "filename": str(log_dir / "dreamcut-analyzer.log"),
                    "formatter": "plain",
                    "filters": ["request_context"],
                    "maxBytes": settings.max_log_file_size_mb * 1024 * 1024,
                    "backupCount": settings.backup_count,
                    "level": settings.level,
                },
            },
            # provider HTTP chatter and broker heartbeats
            "loggers": {
                "urllib3": {"level": "WARNING"},
                "kombu": {"level": "WARNING"},
            },
            "root": {
                "handlers": ["console", "file"],
                "level": settings.level,
            },
        }
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        cache_logger_on_first_use=True,
    )
