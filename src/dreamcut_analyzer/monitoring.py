"""Monitoring utilities for dependency checks and Prometheus metrics."""

from __future__ import annotations

import logging
from typing import Dict

from prometheus_client import Counter, Gauge, start_http_server
import redis
from redis.exceptions import RedisError

from .config import Settings

logger = logging.getLogger(__name__)

PIPELINE_RUNS = Counter(
    "dreamcut_pipeline_runs_total",
    "Total number of analysis pipeline runs",
    labelnames=("mode", "status"),
)
ASSET_ANALYSES = Counter(
    "dreamcut_asset_analyses_total",
    "Total number of individual asset analyses",
    labelnames=("asset_type", "status"),
)
PROVIDER_CALLS = Counter(
    "dreamcut_provider_calls_total",
    "Total number of outbound model provider calls",
    labelnames=("provider", "status"),
)
CELERY_WORKERS = Gauge(
    "dreamcut_active_celery_workers",
    "Number of alive Celery workers responding to ping",
)

_metrics_started = False


def ensure_metrics_server(port: int) -> None:
    global _metrics_started
    if _metrics_started:
        return
    start_http_server(port)
    _metrics_started = True
    logger.info("Prometheus metrics server started", extra={"port": port})


def record_pipeline_run(mode: str, status: str) -> None:
    PIPELINE_RUNS.labels(mode=mode, status=status).inc()


def record_asset_analysis(asset_type: str, status: str) -> None:
    ASSET_ANALYSES.labels(asset_type=asset_type, status=status).inc()


def record_provider_call(provider: str, status: str) -> None:
    PROVIDER_CALLS.labels(provider=provider, status=status).inc()


def _check_redis(settings: Settings) -> str:
    try:
        client = redis.Redis.from_url(
            settings.realtime.redis_url,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        return "ok"
    except RedisError as exc:
        logger.warning("Redis health check failed", exc_info=exc)
        return f"error:{exc.__class__.__name__}"


def _check_celery_workers(celery_app) -> str:
    try:
        replies = celery_app.control.ping(timeout=1)
        worker_count = len(replies) if replies else 0
        CELERY_WORKERS.set(worker_count)
        return "ok" if worker_count else "no-worker"
    except Exception as exc:  # pragma: no cover - defensive
        CELERY_WORKERS.set(0)
        logger.warning("Celery health check failed", exc_info=exc)
        return f"error:{exc.__class__.__name__}"


def collect_dependency_status(settings: Settings, celery_app) -> Dict[str, str]:
    """Run dependency checks and update Prometheus gauges."""

    return {
        "redis": _check_redis(settings),
        "celery": _check_celery_workers(celery_app),
    }
