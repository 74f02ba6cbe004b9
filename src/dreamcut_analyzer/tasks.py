"""Celery task running a realtime analysis and recording its terminal state."""

from __future__ import annotations

import logging
from typing import Any, Dict

from .celery_app import celery_app
from .config import Settings, get_settings
from .logging import bind_request_context
from .models import AssetInput
from .monitoring import record_pipeline_run
from .pipeline import build_pipeline
from .progress import ProgressTracker
from .store import QUERIES, build_broadcaster, build_store

logger = logging.getLogger(__name__)


def _task_settings() -> Settings:
    return get_settings()


@celery_app.task(name="dreamcut.realtime_analysis")
def realtime_analysis(payload: Dict[str, Any]) -> Dict[str, Any]:
    settings = _task_settings()
    query_id = payload["query_id"]
    bind_request_context(payload.get("request_id") or query_id, query_id=query_id)
    store = build_store(settings)
    tracker = ProgressTracker(query_id, payload.get("user_id", ""), build_broadcaster(settings), store)

    try:
        assets = [AssetInput(**asset) for asset in payload.get("assets", [])]
        result = build_pipeline(settings, tracker).run(
            payload["query"],
            assets,
            payload.get("options") or {},
            payload.get("hints") or {},
        )
    except Exception as exc:
        logger.exception("Realtime analysis %s crashed", query_id)
        record_pipeline_run("realtime", "error")
        tracker.failed("Realtime analysis", str(exc) or exc.__class__.__name__)
        raise

    if not result.success:
        store.update(QUERIES, query_id, {"status": "failed", "error": result.error})
        return {"query_id": query_id, "status": "failed", "error": result.error}

    value = result.result
    store.update(
        QUERIES,
        query_id,
        {
            "status": "completed",
            "payload": {
                "analysis": value["analysis"],
                "performance_metrics": value["performance_metrics"],
                "models_used": value["models_used"],
            },
            "error": None,
        },
    )
    return {
        "query_id": query_id,
        "status": "completed",
        "completion_status": value["analysis"]["analysis_metadata"]["completion_status"],
        "processing_time_ms": value["performance_metrics"]["total_time_ms"],
    }
