"""Celery application for background analysis runs."""

from __future__ import annotations

import errno
import logging

from celery import Celery, signals

from .config import Settings, get_settings
from .monitoring import ensure_metrics_server

logger = logging.getLogger(__name__)


def _create_celery(settings: Settings) -> Celery:
    app = Celery(settings.service_name)
    app.conf.update(
        broker_url=settings.celery.broker_url,
        result_backend=settings.celery.result_backend,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_default_queue=settings.celery.default_queue,
        task_routes={"dreamcut.*": {"queue": settings.celery.default_queue}},
        task_time_limit=settings.celery.task_time_limit_sec,
        worker_prefetch_multiplier=settings.celery.prefetch_multiplier,
        task_always_eager=settings.celery.task_always_eager,
    )
    return app


SETTINGS = get_settings()
celery_app = _create_celery(SETTINGS)
_worker_metrics_started = False


def _ensure_worker_metrics_started() -> None:
    """Start worker-side metrics exactly once per process."""

    global _worker_metrics_started
    if _worker_metrics_started:
        return

    try:
        ensure_metrics_server(SETTINGS.monitoring.prometheus_port + 1)
    except OSError as exc:  # pragma: no cover - prefork workers share the port
        if exc.errno != errno.EADDRINUSE:
            raise
        logger.debug("Worker metrics server already running", exc_info=exc)
    _worker_metrics_started = True


@signals.worker_ready.connect
def _on_worker_ready(sender=None, **kwargs):  # type: ignore[override]
    _ensure_worker_metrics_started()


celery_app.autodiscover_tasks(["dreamcut_analyzer"])
