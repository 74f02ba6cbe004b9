"""Asset-free project plan, built from the query analysis alone.

When a request carries no media, Step 3 has nothing to combine. The plan
built here has the same shape as a combined analysis so that the summarizer
produces one output contract for both session modes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .combiner import (
    DEFAULT_DIRECTION,
    build_creative_option_catalog,
    build_optimization_suggestions,
    build_recommended_pipeline,
    derive_format_requirements,
    derive_quality_targets,
    detect_missing_elements,
    mood_integration_plan,
    narrative_structure,
    style_fusion_strategy,
    visual_hierarchy,
)
from .models import OUTPUT_TYPES
from .utils import generate_id, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_ASSET_ROLE = "content_input"


def _hint_intent(hints: Dict[str, Any]) -> Optional[str]:
    intent = hints.get("intent")
    if intent == "mix":
        return "mixed"
    return intent if intent in OUTPUT_TYPES else None


def final_specifications(query: Dict[str, Any], hints: Dict[str, Any]) -> Dict[str, Any]:
    constraints = query.get("constraints", {})
    return {
        "duration_seconds": hints.get("duration_seconds") or constraints.get("duration_seconds") or 30,
        "aspect_ratio": hints.get("aspect_ratio") or constraints.get("aspect_ratio") or "16:9",
        "image_count": hints.get("image_count") or constraints.get("image_count") or 1,
        "quality_level": "professional",
    }


def build_default_combined(
    query_result: Dict[str, Any],
    hints: Optional[Dict[str, Any]] = None,
    *,
    optimization_focus: str = "balanced",
) -> Dict[str, Any]:
    hints = hints or {}
    query = query_result.get("original_prompt", "")
    intent = query_result.get("intent", {})
    modifiers = query_result.get("modifiers", {})
    constraints = query_result.get("constraints", {})
    output_type = _hint_intent(hints) or intent.get("primary_output_type") or "mixed"
    confidence = float(intent.get("confidence", 0.8))
    specs = final_specifications(query_result, hints)

    platforms: List[str] = list(constraints.get("platform") or [])
    if hints.get("platform") and hints["platform"] not in platforms:
        platforms.insert(0, hints["platform"])
    platforms = platforms or ["web"]

    utilization: Dict[str, List[Dict[str, Any]]] = {
        "primary_assets": [],
        "reference_assets": [],
        "supporting_assets": [],
        "unused_assets": [],
    }
    synthesis: Dict[str, Any] = {
        "unified_creative_direction": f"Professional {output_type} creation based on user requirements",
        "style_fusion_strategy": style_fusion_strategy([], list(modifiers.get("style", []))),
        "mood_integration_plan": mood_integration_plan([], list(modifiers.get("mood", []))),
        "visual_hierarchy": visual_hierarchy([], output_type),
    }
    if output_type == "video":
        synthesis["narrative_structure"] = narrative_structure(0)

    combined = {
        "project_id": generate_id("project"),
        "project_title": f"Creative project: {query}",
        "user_query": query,
        "session_mode": "asset_free",
        "unified_intent": {
            "primary_output_type": output_type,
            "secondary_outputs": list(intent.get("secondary_types", [])),
            "confidence": round(confidence, 3),
            "reasoning": f"User wants to {query}",
            "creative_direction": DEFAULT_DIRECTION,
            "target_outcome": f"High-quality {output_type} creation",
        },
        "unified_constraints": {
            "output_specifications": {
                "image_count": specs["image_count"] if output_type in ("image", "mixed") else None,
                "video_duration_seconds": specs["duration_seconds"] if output_type in ("video", "mixed") else None,
                "audio_length_seconds": constraints.get("audio_length_seconds")
                or (30 if output_type == "audio" else None),
                "aspect_ratio": specs["aspect_ratio"],
                "resolution": constraints.get("resolution") or "1920x1080",
                "quality_target": specs["quality_level"],
                "format_requirements": derive_format_requirements(output_type, platforms),
            },
            "platform_constraints": {
                "target_platforms": platforms,
                "platform_specific_requirements": {},
                "distribution_format": "web-optimized" if "web" in platforms else "standard",
            },
            "creative_constraints": {
                "required_style": (modifiers.get("style") or [None])[0],
                "mood_requirements": list(modifiers.get("mood", [])),
                "color_palette": [],
                "brand_requirements": None,
                "accessibility_requirements": ["standard_compliance"],
            },
            "production_constraints": {
                "budget_tier": "low",
                "timeline": constraints.get("timeline") or "standard",
                "complexity_level": "simple",
                "automation_level": "full_auto",
            },
            "final_specifications": specs,
        },
        "asset_utilization": utilization,
        "gap_analysis": {
            "identified_gaps": [],
            "contradictions": [],
            "missing_elements": detect_missing_elements(
                {**constraints, "aspect_ratio": specs["aspect_ratio"]}, output_type
            ),
        },
        "conflict_resolutions": [],
        "creative_synthesis": synthesis,
        "creative_options": build_creative_option_catalog(query_result),
        "production_recommendations": {
            "recommended_pipeline": build_recommended_pipeline(utilization, output_type),
            "quality_targets": derive_quality_targets("moderate", platforms),
            "optimization_suggestions": build_optimization_suggestions(utilization, optimization_focus),
        },
        "synthesis_metadata": {
            "analysis_timestamp": utc_now_iso(),
            "processing_time_ms": 0,
            "synthesis_confidence": round(max(0.8, confidence), 3),
            "query_asset_alignment_score": 0.5,
            "completeness_score": 1.0,
            "complexity_assessment": "simple",
            "validation_checks_passed": 0,
            "validation_checks_total": 0,
            "recommendations_confidence": 0.8,
            "ai_models_used": [],
            "synthesis_approach": "query_only_defaults",
        },
    }
    logger.info("%s - built asset-free plan for %s output", combined["project_id"], output_type)
    return combined


def build_legacy_brief(
    request: Dict[str, Any],
    analysis: Dict[str, Any],
    *,
    brief_id: str,
    created_at: str,
) -> Dict[str, Any]:
    return {
        "briefId": brief_id,
        "createdAt": created_at,
        "request": request,
        "status": "analyzed",
        "comprehensive_analysis": analysis,
    }
