"""Static capability documents served on GET for each analyzer endpoint."""

from __future__ import annotations

from typing import Any, Dict

from ..config import Settings

ANALYSIS_STEPS = [
    "Step 1: Query analysis with the text model fallback chain",
    "Step 2: Parallel asset analysis with vision and transcription models",
    "Step 3: Creative synthesis with gap and conflict resolution",
    "Step 4: Structured summary with pipeline recommendations",
]


def _models(settings: Settings) -> Dict[str, Any]:
    return {
        "query": list(settings.text_model.models),
        "image": list(settings.vision_model.image_models),
        "video": list(settings.vision_model.video_models),
        "audio": list(settings.vision_model.audio_models),
    }


def legacy_capabilities(settings: Settings) -> Dict[str, Any]:
    return {
        "name": "DreamCut Query Analyzer",
        "description": "Comprehensive analysis of a creative request, persisted as a brief",
        "version": "2.0",
        "expectedInput": {
            "query": "string (required)",
            "intent": "image | video | audio | mix (optional)",
            "outputImages": "integer 1-20 (optional)",
            "outputVideoSeconds": "integer 5-180 (optional)",
            "preferences": {"aspect_ratio": "string (optional)", "platform_target": "string (optional)"},
            "budget_credits": "number (optional)",
            "assets": [{"id": "string (optional)", "url": "string", "mediaType": "image | video | audio"}],
        },
        "features": [
            *ANALYSIS_STEPS,
            "Asset role determination",
            "Conflict detection and resolution",
            "Multiple creative options",
        ],
        "models": _models(settings),
    }


def unified_capabilities(settings: Settings) -> Dict[str, Any]:
    return {
        "name": "DreamCut Unified Analyzer",
        "description": "Complete 4-step analysis pipeline returned synchronously",
        "version": "2.0",
        "features": ANALYSIS_STEPS,
        "models": _models(settings),
        "usage": {
            "endpoint": f"{settings.base_url}/dreamcut/unified-analyzer",
            "method": "POST",
            "example": {
                "query": "Create a cinematic 30-second cyberpunk trailer",
                "assets": [
                    {
                        "url": "https://example.com/image.jpg",
                        "mediaType": "image",
                        "userDescription": "Reference style image",
                    }
                ],
                "options": {"step4": {"detail_level": "comprehensive"}},
            },
        },
    }


def realtime_capabilities(settings: Settings) -> Dict[str, Any]:
    return {
        "name": "DreamCut Realtime Analyzer",
        "description": "Background analysis with progress events on a pub/sub channel",
        "version": settings.pipeline.pipeline_version,
        "capabilities": {
            "realtime_streaming": "Progress events published per query id",
            "parallel_processing": "Assets analyzed concurrently",
            "persisted_status": "Terminal state recorded on the query record",
            "comprehensive_output": "Final analysis stored in the record payload",
        },
        "storyboard_flow": [
            {"stage": "init", "progress": 0, "description": "Request acknowledged"},
            {"stage": "analyzing", "progress": "15-70", "description": "One event per asset"},
            {"stage": "merging", "progress": 80, "description": "Request and assets combined"},
            {"stage": "complete", "progress": 100, "description": "Analysis stored on the record"},
            {"stage": "failed", "progress": 100, "description": "Failing stage and error recorded"},
        ],
        "subscription": {
            "channel_pattern": f"{settings.realtime.channel_prefix}:{{query_id}}",
            "status_endpoint": f"{settings.base_url}/dreamcut/realtime-analyzer/{{query_id}}",
        },
        "performance_expectations": {
            "1_asset": "15-30 seconds",
            "3_assets": "45-75 seconds",
            "5_assets": "75-120 seconds",
        },
    }


STEP_DOCUMENTS: Dict[str, Dict[str, Any]] = {
    "step1-analyzer": {
        "name": "DreamCut Step 1 Query Analyzer",
        "description": "Normalizes the request and extracts intent, modifiers, constraints and gaps",
        "expectedInput": {
            "query": "string (required)",
            "options": {
                "model_preference": "llama31_405b | llama31_70b | qwen25_72b | gemma2_27b | mistral_7b | auto",
                "enable_creative_reframing": "boolean",
                "gap_detection_depth": "basic | detailed | comprehensive",
            },
        },
    },
    "step2-asset-analyzer": {
        "name": "DreamCut Step 2 Asset Analyzer",
        "description": "Analyzes each uploaded asset against the request",
        "expectedInput": {
            "user_query": "string (required)",
            "assets": [{"id": "string (optional)", "url": "string", "media_type": "image | video | audio"}],
            "options": {"parallel_processing": "boolean", "max_concurrent": "integer 1-20"},
        },
    },
    "step3-combination-analyzer": {
        "name": "DreamCut Step 3 Combination Analyzer",
        "description": "Merges Step 1 and Step 2 output into a unified project understanding",
        "expectedInput": {
            "query_analysis": "Step 1 query_analysis (required)",
            "asset_analysis": "Step 2 analysis_result (required)",
            "options": {"enable_ai_synthesis": "boolean", "optimization_focus": "quality | speed | cost | balanced"},
        },
    },
    "step4-json-summarizer": {
        "name": "DreamCut Step 4 JSON Summarizer",
        "description": "Builds the final structured analysis from the three earlier steps",
        "expectedInput": {
            "query_analysis": "Step 1 query_analysis (required)",
            "asset_analysis": "Step 2 analysis_result (required)",
            "unified_understanding": "Step 3 unified_understanding (required)",
            "processing_times": {"step1_ms": "integer", "step2_ms": "integer", "step3_ms": "integer"},
            "options": {"detail_level": "summary | minimal | standard | comprehensive"},
        },
    },
}


def step_capabilities(settings: Settings, step: str) -> Dict[str, Any]:
    return {
        **STEP_DOCUMENTS[step],
        "version": settings.pipeline.pipeline_version,
        "endpoint": f"{settings.base_url}/dreamcut/{step}",
        "models": _models(settings),
    }
