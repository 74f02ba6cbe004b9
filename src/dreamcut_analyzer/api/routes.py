"""API route definitions for the analyzer service."""

from __future__ import annotations

import json
import logging
import time
import traceback
from datetime import datetime, timezone
from functools import partial
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from celery.exceptions import CeleryError
from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from kombu.exceptions import OperationalError
from pydantic import BaseModel, ValidationError

from ..asset_analyzer import analyze_assets
from ..celery_app import celery_app
from ..combiner import combine_query_and_assets
from ..config import Settings, settings_dependency
from ..errors import raise_error
from ..fallback import build_legacy_brief
from ..models import AssetInput
from ..monitoring import collect_dependency_status
from ..pipeline import AnalysisPipeline, build_pipeline
from ..query_analyzer import analyze_user_query, detect_asset_requirements, generate_default_constraints
from ..security import authenticate_request
from ..store import BRIEFS, QUERIES, RecordStore, build_store, new_query_record
from ..summarizer import create_final_analysis_output
from ..tasks import realtime_analysis
from ..utils import generate_id, utc_now_iso
from .capabilities import (
    STEP_DOCUMENTS,
    legacy_capabilities,
    realtime_capabilities,
    step_capabilities,
    unified_capabilities,
)
from .schemas import (
    HealthResponse,
    LegacyAnalyzerRequest,
    RealtimeAnalyzerRequest,
    RealtimeAnalyzerResponse,
    RealtimeSubscription,
    Step1AnalyzerRequest,
    Step2AnalyzerRequest,
    Step3CombinationRequest,
    Step4SummarizerRequest,
    UnifiedAnalyzerRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()

PREFIX = "/dreamcut"
PIPELINE_STEPS = ["query_analysis", "asset_analysis", "combination", "summary"]
REALTIME_EVENTS = ["new_message", "progress_update", "asset_progress"]
ASSET_BUCKETS = ["primary_assets", "reference_assets", "supporting_assets", "unused_assets"]

RequestModel = TypeVar("RequestModel", bound=BaseModel)


class InvalidRequest(Exception):
    def __init__(self, details: List[Dict[str, Any]]) -> None:
        super().__init__("Invalid request format")
        self.details = details


def pipeline_dependency(settings: Settings = Depends(settings_dependency)) -> AnalysisPipeline:
    return build_pipeline(settings)


def store_dependency(settings: Settings = Depends(settings_dependency)) -> RecordStore:
    return build_store(settings)


async def _parse(request: Request, model: Type[RequestModel]) -> RequestModel:
    try:
        body = await request.json()
    except ValueError:
        raise InvalidRequest([{"type": "json_invalid", "loc": ["body"], "msg": "Body is not valid JSON"}]) from None
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequest(json.loads(exc.json(include_url=False))) from exc


def _invalid_response(exc: InvalidRequest) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": "Invalid request format", "details": exc.details},
    )


def _error_response(
    message: str, settings: Settings, exc: Optional[BaseException] = None, *, error_code: Optional[str] = None
) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": message}
    if error_code:
        content["error_code"] = error_code
    if exc is not None and not settings.is_production:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def _to_asset_inputs(assets: Sequence[Any]) -> List[AssetInput]:
    stamp = int(time.time() * 1000)
    converted = []
    for index, asset in enumerate(assets):
        description = getattr(asset, "user_description", None) or getattr(asset, "description", None)
        converted.append(
            AssetInput(
                id=asset.id or f"asset_{index}_{stamp}",
                url=str(asset.url),
                media_type=asset.media_type,
                user_description=description,
                filename=getattr(asset, "filename", None),
                metadata=asset.metadata or {},
            )
        )
    return converted


def _legacy_hints(payload: LegacyAnalyzerRequest) -> Dict[str, Any]:
    hints = {
        "intent": payload.intent,
        "duration_seconds": payload.output_video_seconds,
        "image_count": payload.output_images,
        "aspect_ratio": payload.preferences.aspect_ratio,
        "platform": payload.preferences.platform_target,
    }
    return {key: value for key, value in hints.items() if value is not None}


async def _run_pipeline(
    pipeline: AnalysisPipeline,
    query: str,
    assets: List[AssetInput],
    options: Dict[str, Any],
    hints: Dict[str, Any],
) -> Tuple[Optional[Dict[str, Any]], Optional[str], int]:
    started = time.monotonic()
    result = await run_in_threadpool(pipeline.run, query, assets, options, hints)
    elapsed = int((time.monotonic() - started) * 1000)
    if not result.success:
        return None, result.error, elapsed
    return result.result, None, elapsed


@router.post(f"{PREFIX}/query-analyzer", dependencies=[Depends(authenticate_request)])
async def legacy_query_analyzer(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    pipeline: AnalysisPipeline = Depends(pipeline_dependency),
    store: RecordStore = Depends(store_dependency),
) -> JSONResponse:
    try:
        payload = await _parse(request, LegacyAnalyzerRequest)
    except InvalidRequest as exc:
        return _invalid_response(exc)

    try:
        value, error, elapsed = await _run_pipeline(
            pipeline, payload.query, _to_asset_inputs(payload.assets), {}, _legacy_hints(payload)
        )
        if value is None:
            return _error_response(error or "Analysis pipeline failed", settings)

        analysis = value["analysis"]
        brief = build_legacy_brief(
            payload.model_dump(mode="json", by_alias=True),
            analysis,
            brief_id=generate_id("brief"),
            created_at=utc_now_iso(),
        )
        store.put(BRIEFS, brief["briefId"], brief)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Legacy query analysis failed")
        return _error_response(str(exc) or "Unknown error occurred", settings, exc)

    return JSONResponse(
        content={
            "success": True,
            "brief": brief,
            "analysis": analysis,
            "metadata": {
                "processingTimeMs": elapsed,
                "analysisType": "comprehensive_4_step_pipeline",
                "pipelineVersion": "2.0",
                "steps_completed": PIPELINE_STEPS,
                "confidence_score": analysis["analysis_metadata"]["analyzer_confidence"],
                "models_used": value["models_used"],
            },
        }
    )


@router.post(f"{PREFIX}/unified-analyzer", dependencies=[Depends(authenticate_request)])
async def unified_analyzer(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    pipeline: AnalysisPipeline = Depends(pipeline_dependency),
) -> JSONResponse:
    try:
        payload = await _parse(request, UnifiedAnalyzerRequest)
    except InvalidRequest as exc:
        return _invalid_response(exc)

    try:
        value, error, elapsed = await _run_pipeline(
            pipeline, payload.query, _to_asset_inputs(payload.assets), payload.options.for_pipeline(), {}
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unified analysis failed")
        return _error_response(str(exc) or "Unknown error occurred", settings, exc)
    if value is None:
        return _error_response(error or "Analysis pipeline failed", settings)

    analysis = value["analysis"]
    return JSONResponse(
        content={
            "success": True,
            "analysis": analysis,
            "metadata": {
                "processingTimeMs": elapsed,
                "analysisType": "unified_4_step_pipeline",
                "pipelineVersion": "2.0",
                "steps_completed": PIPELINE_STEPS,
                "models_invoked": value["models_used"],
                "confidence_score": analysis["analysis_metadata"]["analyzer_confidence"],
                "performance_metrics": value["performance_metrics"],
            },
        }
    )


def _storyboard_preview(query: str, assets: List[AssetInput]) -> Dict[str, Any]:
    return {
        "user_prompt": query,
        "expected_assets": len(assets),
        "estimated_duration_seconds": 45 + len(assets) * 15,
        "expected_messages": [
            "Got your request. Let's break it down...",
            *[f"Analyzing {asset.media_type}: {asset.display_name}" for asset in assets],
            "Combining query + assets into creative brief...",
            "Creative brief ready",
        ],
    }


@router.post(f"{PREFIX}/realtime-analyzer", dependencies=[Depends(authenticate_request)])
async def realtime_analyzer(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    store: RecordStore = Depends(store_dependency),
) -> JSONResponse:
    try:
        payload = await _parse(request, RealtimeAnalyzerRequest)
    except InvalidRequest as exc:
        return _invalid_response(exc)

    request_id = generate_id("req")
    query_id = payload.query_id or generate_id("dq")
    assets = _to_asset_inputs(payload.assets)
    channel = f"{settings.realtime.channel_prefix}:{query_id}"
    options = payload.options.for_pipeline()
    options.pop("realtime", None)

    try:
        store.put(
            QUERIES,
            query_id,
            new_query_record(
                query_id,
                user_id=payload.user_id,
                user_prompt=payload.query,
                intent=None,
                assets_count=len(assets),
                created_at=utc_now_iso(),
            ),
        )
        task_payload = {
            "query_id": query_id,
            "request_id": request_id,
            "user_id": payload.user_id,
            "query": payload.query,
            "assets": [asset.model_dump(mode="json") for asset in assets],
            "options": options,
        }
        try:
            realtime_analysis.delay(task_payload)
        except (CeleryError, OperationalError) as exc:
            logger.exception("Failed to enqueue realtime analysis %s", query_id)
            store.update(QUERIES, query_id, {"status": "failed", "error": f"Task enqueue failed: {exc}"})
            return _error_response("Background analysis task could not be scheduled", settings, exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Realtime analysis request %s failed", request_id)
        return _error_response(str(exc) or "Unknown error occurred", settings, exc)

    logger.info("%s - realtime analysis %s queued with %d assets", request_id, query_id, len(assets))
    response = RealtimeAnalyzerResponse(
        message="Realtime analysis started",
        query_id=query_id,
        request_id=request_id,
        channel=channel,
        realtime_subscription=RealtimeSubscription(
            channel=channel,
            events=REALTIME_EVENTS,
            database_table="dreamcut_queries",
        ),
        expected_flow=[
            {"stage": "init", "message": "Got your request. Let's break it down..."},
            *[
                {"stage": "analyzing", "message": f"Analyzing {asset.media_type}: {asset.display_name}"}
                for asset in assets
            ],
            {"stage": "merging", "message": "Combining query + assets into creative brief..."},
            {"stage": "complete", "message": "Creative brief ready"},
        ],
        storyboard_preview=_storyboard_preview(payload.query, assets),
    )
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=response.model_dump())


@router.get(f"{PREFIX}/realtime-analyzer/{{query_id}}", dependencies=[Depends(authenticate_request)])
async def realtime_status(query_id: str, store: RecordStore = Depends(store_dependency)) -> Dict[str, Any]:
    record = store.get(QUERIES, query_id)
    if record is None:
        raise_error("ERR_QUERY_NOT_FOUND", detail=f"No analysis record for {query_id}")
    return {"success": True, "query_id": query_id, "status": record["status"], "record": record}


@router.get(f"{PREFIX}/briefs/{{brief_id}}", dependencies=[Depends(authenticate_request)])
async def get_brief(brief_id: str, store: RecordStore = Depends(store_dependency)) -> Dict[str, Any]:
    brief = store.get(BRIEFS, brief_id)
    if brief is None:
        raise_error("ERR_BRIEF_NOT_FOUND", detail=f"No brief {brief_id}")
    return {"success": True, "brief": brief}


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _step_envelope(request_id: str, started: float) -> Dict[str, Any]:
    return {
        "success": True,
        "request_id": request_id,
        "timestamp": utc_now_iso(),
        "processing_time_ms": _elapsed_ms(started),
    }


def _structure_error(error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message, "error_code": error_code},
    )


def _check_structures(
    query_analysis: Dict[str, Any],
    asset_analysis: Dict[str, Any],
    unified: Optional[Dict[str, Any]] = None,
) -> Optional[JSONResponse]:
    if not query_analysis.get("intent") or not query_analysis.get("modifiers"):
        return _structure_error(
            "INVALID_QUERY_ANALYSIS", "Invalid query analysis structure - missing required fields"
        )
    if not isinstance(asset_analysis.get("asset_analyses"), list):
        return _structure_error(
            "INVALID_ASSET_ANALYSIS", "Invalid asset analysis structure - missing asset analyses array"
        )
    if unified is not None and (not unified.get("unified_intent") or not unified.get("asset_utilization")):
        return _structure_error(
            "INVALID_UNIFIED_UNDERSTANDING", "Invalid unified understanding structure - missing required fields"
        )
    return None


def _executive_summary(combined: Dict[str, Any]) -> Dict[str, Any]:
    utilization = combined["asset_utilization"]
    counts = {bucket: len(utilization.get(bucket, [])) for bucket in ASSET_BUCKETS}
    total = sum(counts.values())
    used = counts["primary_assets"] + counts["supporting_assets"]
    metadata = combined["synthesis_metadata"]
    gaps = combined["gap_analysis"]
    intent = combined["unified_intent"]
    return {
        "project_title": combined["project_title"],
        "unified_intent": {
            "output_type": intent["primary_output_type"],
            "confidence": round(intent["confidence"] * 100),
            "creative_direction": intent["creative_direction"],
        },
        "asset_utilization": {
            **{f"{bucket}_count": count for bucket, count in counts.items()},
            "utilization_rate": round(used / total * 100) if total else 0,
        },
        "project_readiness": {
            "completeness_score": round(metadata["completeness_score"] * 100),
            "complexity_level": metadata["complexity_assessment"],
            "critical_gaps": sum(1 for gap in gaps["identified_gaps"] if gap["impact_level"] == "critical"),
            "major_contradictions": len(gaps["contradictions"]),
            "estimated_pipeline_steps": len(combined["production_recommendations"]["recommended_pipeline"]),
        },
    }


@router.post(f"{PREFIX}/step1-analyzer", dependencies=[Depends(authenticate_request)])
async def step1_analyzer(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    pipeline: AnalysisPipeline = Depends(pipeline_dependency),
) -> JSONResponse:
    started = time.monotonic()
    request_id = generate_id("step1")
    try:
        payload = await _parse(request, Step1AnalyzerRequest)
    except InvalidRequest as exc:
        return _invalid_response(exc)

    try:
        result = await run_in_threadpool(
            analyze_user_query, payload.query, pipeline.text_client, payload.options.model_dump()
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("%s - query analysis failed", request_id)
        return _error_response(str(exc) or "Unknown error occurred", settings, exc, error_code="ANALYSIS_FAILED")
    if not result.success:
        return _error_response(result.error or "Query analysis failed", settings, error_code="ANALYSIS_FAILED")

    analysis = result.result
    logger.info("%s - query analyzed with %s", request_id, result.model_used)
    return JSONResponse(
        content={
            **_step_envelope(request_id, started),
            "query_analysis": analysis,
            "asset_requirements": detect_asset_requirements(analysis),
            "default_constraints": generate_default_constraints(analysis),
            "model_used": result.model_used,
            "debug": {
                "original_query_length": len(payload.query),
                "normalization_applied": analysis["normalized_prompt"] != payload.query,
                "confidence_score": analysis["intent"]["confidence"],
            },
        }
    )


@router.post(f"{PREFIX}/step2-asset-analyzer", dependencies=[Depends(authenticate_request)])
async def step2_asset_analyzer(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    pipeline: AnalysisPipeline = Depends(pipeline_dependency),
) -> JSONResponse:
    started = time.monotonic()
    request_id = generate_id("step2")
    try:
        payload = await _parse(request, Step2AnalyzerRequest)
    except InvalidRequest as exc:
        return _invalid_response(exc)

    options = {key: value for key, value in payload.options.model_dump().items() if value is not None}
    try:
        result = await run_in_threadpool(
            partial(
                analyze_assets,
                _to_asset_inputs(payload.assets),
                payload.user_query,
                pipeline.vision_client,
                max_concurrent=options.get("max_concurrent", settings.pipeline.max_concurrent_assets),
                timeout_per_asset=options.get("timeout_per_asset", settings.pipeline.asset_timeout_sec),
                options=options,
            )
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("%s - asset analysis failed", request_id)
        return _error_response(str(exc) or "Unknown error occurred", settings, exc, error_code="ANALYSIS_FAILED")
    if not result.success:
        return _error_response(result.error or "Asset analysis failed", settings, error_code="ANALYSIS_FAILED")

    batch = result.result
    summary = batch["summary"]
    return JSONResponse(
        content={
            **_step_envelope(request_id, started),
            "analysis_result": batch,
            "summary": {
                "total_assets": batch["total_assets"],
                "successful_analyses": batch["successful_analyses"],
                "failed_analyses": batch["failed_analyses"],
                "overall_quality_score": summary["overall_quality_score"],
                "asset_type_breakdown": summary["asset_type_breakdown"],
                "primary_content_count": len(summary["primary_content_assets"]),
                "enhancement_needed_count": len(summary["enhancement_needed_assets"]),
            },
            "insights": {
                "alignment_insights": summary["alignment_insights"],
                "technical_recommendations": summary["technical_recommendations"],
                "high_priority_processing": summary["high_priority_processing"],
            },
        }
    )


@router.post(f"{PREFIX}/step3-combination-analyzer", dependencies=[Depends(authenticate_request)])
async def step3_combination_analyzer(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    pipeline: AnalysisPipeline = Depends(pipeline_dependency),
) -> JSONResponse:
    started = time.monotonic()
    request_id = generate_id("step3")
    try:
        payload = await _parse(request, Step3CombinationRequest)
    except InvalidRequest as exc:
        return _invalid_response(exc)
    invalid = _check_structures(payload.query_analysis, payload.asset_analysis)
    if invalid is not None:
        return invalid

    options = {"enable_ai_synthesis": settings.pipeline.enable_ai_synthesis, **payload.options.model_dump()}
    try:
        result = await run_in_threadpool(
            combine_query_and_assets, payload.query_analysis, payload.asset_analysis, pipeline.text_client, options
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("%s - combination failed", request_id)
        return _error_response(str(exc) or "Unknown error occurred", settings, exc, error_code="COMBINATION_FAILED")
    if not result.success:
        return _error_response(result.error or "Combination failed", settings, error_code="COMBINATION_FAILED")

    combined = result.result
    if payload.project_name:
        combined["project_title"] = payload.project_name
    return JSONResponse(
        content={
            **_step_envelope(request_id, started),
            "unified_understanding": combined,
            "executive_summary": _executive_summary(combined),
            "model_used": result.model_used,
        }
    )


@router.post(f"{PREFIX}/step4-json-summarizer", dependencies=[Depends(authenticate_request)])
async def step4_json_summarizer(
    request: Request,
    settings: Settings = Depends(settings_dependency),
) -> Response:
    started = time.monotonic()
    request_id = generate_id("step4")
    try:
        payload = await _parse(request, Step4SummarizerRequest)
    except InvalidRequest as exc:
        return _invalid_response(exc)
    invalid = _check_structures(payload.query_analysis, payload.asset_analysis, payload.unified_understanding)
    if invalid is not None:
        return invalid

    times = payload.processing_times
    step_timings = {"step1": times.step1_ms, "step2": times.step2_ms, "step3": times.step3_ms}
    options = {"pipeline_version": settings.pipeline.pipeline_version, **payload.options.model_dump()}
    try:
        result = await run_in_threadpool(
            partial(
                create_final_analysis_output,
                payload.query_analysis,
                payload.asset_analysis,
                payload.unified_understanding,
                options,
                timestamp=utc_now_iso(),
                step_timings=step_timings,
            )
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("%s - summarization failed", request_id)
        return _error_response(str(exc) or "Unknown error occurred", settings, exc, error_code="SUMMARIZATION_FAILED")
    if not result.success:
        return _error_response(result.error or "Summarization failed", settings, error_code="SUMMARIZATION_FAILED")

    analysis = result.result
    envelope = _step_envelope(request_id, started)
    total_assets = payload.asset_analysis.get("total_assets", 0)
    content = {
        **envelope,
        "total_pipeline_time_ms": sum(step_timings.values()) + envelope["processing_time_ms"],
        "final_analysis": analysis,
        "performance_metrics": {
            "step_breakdown": {
                "step1_query_analysis": times.step1_ms,
                "step2_asset_analysis": times.step2_ms,
                "step3_combination": times.step3_ms,
                "step4_summarization": envelope["processing_time_ms"],
            },
            "total_assets_processed": total_assets,
            "time_per_asset_ms": round(times.step2_ms / total_assets) if total_assets else 0,
        },
        "pipeline_status": {
            "all_steps_completed": True,
            "completion_quality": analysis["analysis_metadata"]["completion_status"],
            "quality_score": analysis["analysis_metadata"]["quality_score"],
            "analyzer_confidence": analysis["analysis_metadata"]["analyzer_confidence"],
        },
    }
    if payload.export_format == "formatted":
        return Response(content=json.dumps(content, indent=2), media_type="application/json")
    return JSONResponse(content=content)


@router.get(f"{PREFIX}/query-analyzer")
async def legacy_capability_doc(settings: Settings = Depends(settings_dependency)) -> Dict[str, Any]:
    return legacy_capabilities(settings)


@router.get(f"{PREFIX}/unified-analyzer")
async def unified_capability_doc(settings: Settings = Depends(settings_dependency)) -> Dict[str, Any]:
    return unified_capabilities(settings)


@router.get(f"{PREFIX}/realtime-analyzer")
async def realtime_capability_doc(settings: Settings = Depends(settings_dependency)) -> Dict[str, Any]:
    return realtime_capabilities(settings)


@router.get("/monitor/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(settings_dependency)) -> HealthResponse:
    deps = collect_dependency_status(settings, celery_app)
    overall = "ok" if all(value == "ok" for value in deps.values()) else "degraded"
    return HealthResponse(status=overall, timestamp=datetime.now(timezone.utc), dependencies=deps)


def _step_capability_endpoint(step: str):
    async def endpoint(settings: Settings = Depends(settings_dependency)) -> Dict[str, Any]:
        return step_capabilities(settings, step)

    endpoint.__name__ = f"{step.replace('-', '_')}_capability_doc"
    return endpoint


for _step in STEP_DOCUMENTS:
    router.add_api_route(f"{PREFIX}/{_step}", _step_capability_endpoint(_step), methods=["GET"])
