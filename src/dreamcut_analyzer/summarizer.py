"""Step 4: assemble the final structured analysis document.

The summarizer is a pure function of its inputs. Identifiers and timestamps
are passed in, so summarizing the same inputs twice yields identical JSON.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Optional

from .result import Result
from .utils import clamp, contains_any

logger = logging.getLogger(__name__)

DEFAULT_ASSET_ROLE = "content_input"
SUMMARY_LEVELS = ("summary", "minimal")

GAP_DESCRIPTIONS = {
    "missing_duration": "Content duration not specified",
    "missing_aspect_ratio": "Output aspect ratio not specified",
    "missing_style_direction": "No specific style direction provided",
    "missing_target_audience": "Target audience not defined",
    "missing_platform_specs": "Target platform not specified",
    "missing_mood_tone": "Emotional tone and mood not specified",
    "vague_requirements": "Request is underspecified",
}
GAP_IMPACT = {
    "missing_duration": "high",
    "vague_requirements": "high",
    "missing_aspect_ratio": "medium",
    "missing_style_direction": "medium",
    "missing_mood_tone": "medium",
    "missing_platform_specs": "medium",
}
TOOL_PURPOSES = {
    "upscaling": "Enhance image resolution and quality",
    "enhancement": "Improve overall asset quality",
    "video_editor": "Edit and compose video content",
    "audio_editor": "Process and enhance audio content",
    "image_editor": "Edit and enhance image content",
    "compositing": "Combine multiple visual elements",
    "color_correction": "Adjust colors and visual tone",
}
TOOL_ALTERNATIVES = {
    "upscaling": ["Real-ESRGAN", "ESRGAN", "Waifu2x"],
    "video_editor": ["FFmpeg", "Adobe Premiere", "DaVinci Resolve"],
    "audio_editor": ["Audacity", "Adobe Audition", "Logic Pro"],
    "image_editor": ["GIMP", "Adobe Photoshop", "Canva"],
    "compositing": ["After Effects", "Blender", "Nuke"],
}
COMPLEXITY_LEVELS = {"easy": "beginner", "moderate": "intermediate", "complex": "advanced", "expert": "expert"}
TECHNICAL_TARGETS = {
    "acceptable": "acceptable",
    "standard": "acceptable",
    "good": "good",
    "high": "excellent",
    "professional": "professional",
    "cinema": "cinematic",
}
IMPACT_LEVELS = {"low": "minimal", "medium": "moderate", "high": "significant", "critical": "major"}
CHALLENGE_TYPES = {"technical": "technical", "style": "creative", "content": "resource", "platform": "technical"}
BUCKET_ROLES = {
    "primary_assets": "primary_content",
    "reference_assets": "reference_material",
    "supporting_assets": "supporting_element",
    "unused_assets": "unused",
}
CLARITY_WORDS = ("style", "color", "mood", "tone", "scene", "action", "character", "setting")


# -- formatting ----------------------------------------------------------------


def format_file_size(size: Optional[float]) -> Optional[str]:
    if size is None or isinstance(size, bool) or not isinstance(size, (int, float)):
        return None
    if not math.isfinite(size) or size <= 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    index = max(0, min(int(math.floor(math.log(size, 1024))), len(units) - 1))
    return f"{round(size / 1024 ** index, 2):g} {units[index]}"


def format_duration(seconds: Optional[float]) -> Optional[str]:
    if not seconds:
        return None
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m {round(seconds % 60)}s"
    return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60)}m"


def map_quality_score(score: Optional[float]) -> Optional[str]:
    if not score:
        return None
    if score >= 9:
        return "professional"
    if score >= 7:
        return "excellent"
    if score >= 5:
        return "good"
    if score >= 3:
        return "fair"
    return "poor"


def quality_distribution(entries: List[Dict[str, Any]]) -> Dict[str, int]:
    distribution = {"excellent": 0, "good": 0, "fair": 0, "poor": 0}
    for entry in entries:
        score = entry.get("metadata", {}).get("quality_score") or 0
        if score >= 8:
            distribution["excellent"] += 1
        elif score >= 6:
            distribution["good"] += 1
        elif score >= 4:
            distribution["fair"] += 1
        else:
            distribution["poor"] += 1
    return distribution


# -- prompt assessment ---------------------------------------------------------


def assess_prompt_clarity(prompt: str) -> int:
    lowered = prompt.lower()
    score = 5
    if len(prompt) > 20:
        score += 2
    if len(prompt) > 50:
        score += 1
    score += sum(1 for word in CLARITY_WORDS if word in lowered)
    if len(prompt) < 10:
        score -= 3
    return int(clamp(score, 1, 10))


def generate_prompt_improvements(prompt: str, intent: str) -> List[str]:
    lowered = prompt.lower()
    improvements = []
    if len(prompt) < 10:
        improvements.append("Add more specific details about what you want to create")
    if not contains_any(lowered, ("style", "mood", "tone")):
        improvements.append("Specify the style, mood, or tone you prefer")
    if intent == "video" and not contains_any(lowered, ("scene", "action")):
        improvements.append("Describe the scenes or actions you want to include")
    if intent == "image" and not contains_any(lowered, ("color", "composition")):
        improvements.append("Mention preferred colors or composition style")
    return improvements or ["Prompt is clear and detailed"]


# -- gap and step mapping ------------------------------------------------------


def gap_category(key: str) -> str:
    if contains_any(key, ("style", "mood", "theme")):
        return "style"
    if contains_any(key, ("resolution", "format", "duration", "aspect")):
        return "technical"
    if contains_any(key, ("platform", "target")):
        return "platform"
    if contains_any(key, ("timeline", "deadline")):
        return "timeline"
    return "content"


def gap_description(key: str) -> str:
    return GAP_DESCRIPTIONS.get(key) or f"Missing {key.replace('missing_', '').replace('_', ' ')}"


def gap_impact(key: str) -> str:
    return GAP_IMPACT.get(key, "low")


def gap_suggestion(key: str, output_type: str) -> str:
    suggestions = {
        "missing_duration": "Use 30 seconds for social media, 60 seconds for general content",
        "missing_aspect_ratio": "Use 16:9 for video and 1:1 for images",
        "missing_style_direction": "Apply modern, clean visual style appropriate for content type",
        "missing_mood_tone": "Use professional, engaging tone suitable for target audience",
        "missing_platform_specs": "Optimize for web and social media platforms",
        "missing_target_audience": "Target general audience with broad appeal",
        "vague_requirements": f"Fall back to standard {output_type} production defaults",
    }
    return suggestions.get(key) or f"Use platform-appropriate defaults for {key.replace('missing_', '')}"


def step_category(step_name: str) -> str:
    name = step_name.lower()
    if contains_any(name, ("enhance", "improve", "optimize")):
        return "enhancement"
    if contains_any(name, ("create", "creation", "generate", "produce")):
        return "creation"
    if contains_any(name, ("integrat", "combine", "merge")):
        return "integration"
    if contains_any(name, ("final", "polish", "finish")):
        return "finalization"
    return "preparation"


def tool_type(tool: str) -> str:
    name = tool.lower()
    if re.search(r"model|\bai\b|llm", name):
        return "ai_model"
    if contains_any(name, ("api", "service", "cloud")):
        return "api_service"
    if contains_any(name, ("editor", "studio", "creative")):
        return "creative_software"
    return "processing_tool"


def step_success_probability(step: Dict[str, Any], has_dependencies: bool) -> float:
    probability = 0.8
    if step.get("complexity_level") == "expert":
        probability -= 0.2
    elif step.get("complexity_level") == "complex":
        probability -= 0.1
    if has_dependencies:
        probability -= 0.05
    return round(clamp(probability, 0.3, 1.0), 2)


def priority_level(optimization_type: str, focus: str) -> str:
    if optimization_type == focus:
        return "important"
    if focus == "balanced" or optimization_type == "quality":
        return "recommended"
    return "optional"


def determine_asset_role_from_analysis(
    entry: Dict[str, Any], output_type: str, combined: Dict[str, Any]
) -> str:
    asset_type = entry.get("asset_type")
    if not entry.get("processing_info", {}).get("success", True):
        return "unusable"
    mapping = {
        ("image", "video"): "style reference",
        ("video", "video"): "primary footage",
        ("audio", "video"): "voiceover narration",
        ("image", "image"): "primary content",
        ("audio", "audio"): "primary audio",
    }
    role = mapping.get((asset_type, output_type))
    if role:
        return role
    bucket = _bucket_for(entry.get("asset_id"), combined)
    return bucket.replace("_", " ") if bucket and bucket != "unused" else "supporting material"


def _bucket_for(asset_id: Optional[str], combined: Dict[str, Any]) -> Optional[str]:
    for bucket, role in BUCKET_ROLES.items():
        for item in combined.get("asset_utilization", {}).get(bucket, []):
            if item.get("asset_id") == asset_id:
                return role
    return None


def _utilization_item(asset_id: str, combined: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for bucket in BUCKET_ROLES:
        for item in combined.get("asset_utilization", {}).get(bucket, []):
            if item.get("asset_id") == asset_id:
                return item
    return None


# -- sections ------------------------------------------------------------------


def _confidences(query: Dict[str, Any], assets: Dict[str, Any], combined: Dict[str, Any]) -> Dict[str, float]:
    query_confidence = float(query.get("intent", {}).get("confidence", 0))
    synthesis_confidence = float(combined["synthesis_metadata"].get("synthesis_confidence", 0))
    if assets.get("total_assets"):
        asset_confidence = float(assets.get("summary", {}).get("overall_quality_score", 0)) / 10
    else:
        asset_confidence = query_confidence
    return {
        "query_analysis_confidence": round(query_confidence, 3),
        "asset_analysis_confidence": round(asset_confidence, 3),
        "synthesis_confidence": round(synthesis_confidence, 3),
        "overall_confidence": round((query_confidence + asset_confidence + synthesis_confidence) / 3, 2),
    }


def create_analysis_metadata(
    query: Dict[str, Any],
    assets: Dict[str, Any],
    combined: Dict[str, Any],
    confidences: Dict[str, float],
    *,
    analysis_id: str,
    timestamp: str,
    total_processing_time_ms: int,
    pipeline_version: str,
) -> Dict[str, Any]:
    completeness = float(combined["synthesis_metadata"].get("completeness_score", 0))
    quality = round(
        confidences["query_analysis_confidence"] * 3
        + confidences["asset_analysis_confidence"] * 3
        + confidences["synthesis_confidence"] * 2
        + completeness * 2
    )
    critical = any(gap["impact_level"] == "critical" for gap in combined["gap_analysis"]["identified_gaps"])
    status = "partial" if critical or confidences["overall_confidence"] < 0.5 else "complete"
    return {
        "analysis_id": analysis_id,
        "timestamp": timestamp,
        "total_processing_time_ms": total_processing_time_ms,
        "pipeline_version": pipeline_version,
        "analyzer_confidence": confidences["overall_confidence"],
        "completion_status": status,
        "quality_score": int(clamp(quality, 0, 10)),
        "session_mode": combined.get("session_mode", "asset_driven"),
    }


def _quality_level(specs: List[str]) -> Optional[str]:
    if not specs:
        return None
    joined = " ".join(specs).lower()
    if contains_any(joined, ("cinema", "4k", "professional")):
        return "cinema"
    if contains_any(joined, ("high", "hd", "1080p")):
        return "high"
    if contains_any(joined, ("draft", "low")):
        return "draft"
    return "standard"


def _urgency(timeline: Optional[str]) -> Optional[str]:
    if not timeline:
        return None
    lowered = timeline.lower()
    if contains_any(lowered, ("urgent", "asap", "immediate")):
        return "urgent"
    if contains_any(lowered, ("soon", "quick", "fast")):
        return "high"
    if contains_any(lowered, ("standard", "normal")):
        return "medium"
    return "low"


def estimate_project_timeline(pipeline: List[Dict[str, Any]]) -> str:
    if not pipeline:
        return "Unknown"
    total = 0.0
    for step in pipeline:
        match = re.search(r"(\d+)(?:-(\d+))?\s*minutes?", step.get("estimated_time") or "")
        if match:
            low = int(match.group(1))
            high = int(match.group(2)) if match.group(2) else low
            total += (low + high) / 2
    if total == 0:
        return "Variable"
    if total < 60:
        return f"{round(total)} minutes"
    if total < 1440:
        return f"{round(total / 60)} hours"
    return f"{round(total / 1440)} days"


def create_query_summary(query: Dict[str, Any], combined: Dict[str, Any]) -> Dict[str, Any]:
    constraints = query.get("constraints", {})
    modifiers = query.get("modifiers", {})
    intent = combined["unified_intent"]
    output_specs = combined["unified_constraints"]["output_specifications"]
    platform_constraints = combined["unified_constraints"]["platform_constraints"]
    gaps = query.get("gaps", {})

    return {
        "original_prompt": query.get("original_prompt", ""),
        "normalized_prompt": query.get("normalized_prompt", ""),
        "parsed_intent": {
            "primary_output_type": intent["primary_output_type"],
            "confidence": intent["confidence"],
            "secondary_outputs": intent.get("secondary_outputs", []),
            "intent_description": intent["creative_direction"],
            "user_goal": intent["target_outcome"],
        },
        "extracted_constraints": {
            "technical_requirements": {
                "output_count": constraints.get("image_count")
                or (1 if constraints.get("duration_seconds") or constraints.get("audio_length_seconds") else None),
                "duration_seconds": constraints.get("duration_seconds") or output_specs.get("video_duration_seconds"),
                "aspect_ratio": constraints.get("aspect_ratio") or output_specs.get("aspect_ratio"),
                "resolution": constraints.get("resolution"),
                "format_preferences": [constraints["image_format"]] if constraints.get("image_format") else [],
                "quality_level": _quality_level(modifiers.get("technical_specs", [])),
            },
            "creative_requirements": {
                "style_preferences": list(modifiers.get("style", [])),
                "mood_requirements": list(modifiers.get("mood", [])),
                "theme_elements": list(modifiers.get("theme", [])),
                "color_preferences": list(modifiers.get("aesthetic", [])),
                "brand_requirements": combined["unified_constraints"]["creative_constraints"].get(
                    "brand_requirements"
                ),
            },
            "platform_requirements": {
                "target_platforms": platform_constraints["target_platforms"],
                "distribution_format": platform_constraints["distribution_format"],
                "platform_specific_constraints": platform_constraints["platform_specific_requirements"],
            },
            "timeline_requirements": {
                "urgency_level": _urgency(constraints.get("timeline")),
                "deadline": constraints.get("timeline"),
                "estimated_timeline": estimate_project_timeline(
                    combined["production_recommendations"]["recommended_pipeline"]
                ),
            },
        },
        "identified_gaps": [
            {
                "gap_type": gap_category(key),
                "description": gap_description(key),
                "impact_level": gap_impact(key),
                "suggested_defaults": gap_suggestion(key, intent["primary_output_type"]),
            }
            for key, value in gaps.items()
            if value is True
        ],
    }


def _processing_time_estimate(entry: Dict[str, Any]) -> str:
    quality = entry.get("metadata", {}).get("quality_score") or 5
    base = {"image": (5, 2), "video": (15, 8), "audio": (3, 1)}.get(entry.get("asset_type"), (2, 2))
    return f"{base[0] if quality < 5 else base[1]} minutes"


def _recommended_usage(item: Optional[Dict[str, Any]], role: Optional[str]) -> str:
    if not item:
        return "Asset not utilized in current project plan"
    detail = (
        item.get("usage_plan")
        or item.get("application")
        or item.get("integration_method")
        or item.get("alternative_usage")
        or ""
    )
    label = (role or "supporting_element").replace("_", " ")
    return f"{label.capitalize()}: {detail}" if detail else label.capitalize()


def create_assets_analysis(
    assets: Dict[str, Any], combined: Dict[str, Any], processing_time_ms: int, detail_level: str
) -> Dict[str, Any]:
    entries = assets.get("asset_analyses", [])
    summary = assets.get("summary", {})
    successful = sum(1 for e in entries if e["processing_info"]["success"])

    individual = []
    for entry in entries:
        metadata = entry.get("metadata", {})
        content = entry.get("content_analysis", {})
        alignment = entry.get("alignment_with_query", {})
        needs = entry.get("processing_needs", {})
        role = _bucket_for(entry["asset_id"], combined)
        item = _utilization_item(entry["asset_id"], combined)
        dims = metadata.get("dimensions")
        key_elements = list(content.get("objects_detected", []))
        if detail_level in SUMMARY_LEVELS:
            key_elements = key_elements[:3]
        individual.append(
            {
                "asset_id": entry["asset_id"],
                "asset_type": entry["asset_type"],
                "analysis_status": "success" if entry["processing_info"]["success"] else "failed",
                "metadata_summary": {
                    "file_size": format_file_size(metadata.get("file_size")),
                    "dimensions": f"{dims['width']}x{dims['height']}" if dims else None,
                    "duration": format_duration(metadata.get("duration_seconds")),
                    "format": metadata.get("format"),
                    "quality_score": metadata.get("quality_score"),
                },
                "content_summary": {
                    "primary_description": content.get("primary_description") or "No description available",
                    "key_elements": key_elements,
                    "style_characteristics": content.get("style_analysis"),
                    "mood_tone": content.get("mood_assessment"),
                    "technical_quality": map_quality_score(metadata.get("quality_score")),
                    "usability_assessment": content.get("quality_assessment") or "No assessment available",
                },
                "alignment_with_query": {
                    "alignment_score": alignment.get("alignment_score", 0),
                    "role_in_project": role or "unused",
                    "specific_contributions": list(alignment.get("usage_recommendations", [])),
                    "recommended_usage": _recommended_usage(item, role),
                },
                "processing_recommendations": {
                    "enhancement_needed": bool(needs.get("requires_enhancement")),
                    "recommended_tools": list(needs.get("recommended_tools", [])),
                    "processing_priority": {
                        "primary_content": "critical",
                        "reference_material": "high",
                        "supporting_element": "medium",
                    }.get(role or "", "low"),
                    "estimated_processing_time": _processing_time_estimate(entry),
                },
            }
        )

    return {
        "total_assets_processed": assets.get("total_assets", 0),
        "asset_type_breakdown": dict(summary.get("asset_type_breakdown", {})),
        "processing_summary": {
            "successful_analyses": successful,
            "failed_analyses": len(entries) - successful,
            "partial_analyses": 0,
            "total_processing_time_ms": processing_time_ms,
        },
        "individual_assets": individual,
        "asset_quality_overview": {
            "overall_quality_score": summary.get("overall_quality_score", 0),
            "high_quality_assets": sum(1 for e in entries if (e["metadata"].get("quality_score") or 0) >= 7),
            "enhancement_needed_assets": len(summary.get("enhancement_needed_assets", [])),
            "unusable_assets": sum(1 for e in entries if (e["metadata"].get("quality_score") or 0) < 3),
            "quality_distribution": quality_distribution(entries),
        },
    }


def _success_probability(completeness: float, alignment: float, gaps: List[Dict[str, Any]]) -> float:
    probability = (completeness + alignment) / 2
    probability -= 0.2 * sum(1 for gap in gaps if gap["impact_level"] == "critical")
    probability -= 0.1 * sum(1 for gap in gaps if gap["impact_level"] == "high")
    return round(clamp(probability, 0.1, 1.0), 2)


def _feasibility(combined: Dict[str, Any]) -> Dict[str, Any]:
    metadata = combined["synthesis_metadata"]
    gap_analysis = combined["gap_analysis"]
    utilization = combined["asset_utilization"]

    technical = 0.8 - 0.1 * sum(1 for gap in gap_analysis["identified_gaps"] if gap["gap_type"] == "technical")
    if metadata.get("complexity_assessment") == "highly_complex":
        technical -= 0.2
    elif metadata.get("complexity_assessment") == "complex":
        technical -= 0.1
    technical = clamp(technical, 0.1, 1.0)

    creative = float(metadata.get("synthesis_confidence", 0)) - 0.15 * sum(
        1 for item in gap_analysis["contradictions"] if item["contradiction_type"] == "intent_vs_assets"
    )
    creative = clamp(creative, 0.1, 1.0)

    total = sum(len(utilization.get(bucket, [])) for bucket in BUCKET_ROLES)
    if total == 0:
        resources = 0.3 if combined.get("session_mode") != "asset_free" else 0.8
    else:
        resources = clamp(len(utilization["primary_assets"]) / total + 0.2, 0.1, 1.0)

    risks = []
    if any(gap["impact_level"] == "critical" for gap in gap_analysis["identified_gaps"]):
        risks.append("Critical gaps may impact project success")
    if float(metadata.get("synthesis_confidence", 0)) < 0.7:
        risks.append("Low synthesis confidence may affect output quality")
    if combined.get("conflict_resolutions"):
        risks.append("Assets require conflict resolution before production")

    return {
        "technical_feasibility": round(technical, 2),
        "creative_feasibility": round(creative, 2),
        "resource_adequacy": round(resources, 2),
        "overall_feasibility": round((technical + creative + resources) / 3, 2),
        "risk_factors": risks,
    }


def _project_scope(combined: Dict[str, Any]) -> str:
    complexity = combined["synthesis_metadata"].get("complexity_assessment", "moderate")
    utilization = combined["asset_utilization"]
    count = sum(len(utilization.get(b, [])) for b in ("primary_assets", "reference_assets", "supporting_assets"))
    if complexity == "highly_complex" or count > 10:
        return "Large-scale project requiring extensive processing"
    if complexity == "complex" or count > 5:
        return "Medium-scale project with moderate complexity"
    return "Small-scale project with straightforward requirements"


def create_global_understanding(
    query: Dict[str, Any], assets: Dict[str, Any], combined: Dict[str, Any]
) -> Dict[str, Any]:
    utilization = combined["asset_utilization"]
    synthesis = combined["creative_synthesis"]
    metadata = combined["synthesis_metadata"]
    gap_analysis = combined["gap_analysis"]
    output_type = combined["unified_intent"]["primary_output_type"]
    primary = utilization["primary_assets"]
    reference = utilization["reference_assets"]
    supporting = utilization["supporting_assets"]
    entries = assets.get("asset_analyses", [])

    challenges = [
        {
            "challenge_type": CHALLENGE_TYPES.get(gap["gap_type"], "quality"),
            "description": gap["description"],
            "impact_assessment": IMPACT_LEVELS.get(gap["impact_level"], "moderate"),
            "mitigation_strategy": gap["suggested_resolution"],
            "resolution_confidence": {"low": 0.9, "medium": 0.7, "high": 0.5}.get(gap["impact_level"], 0.3),
        }
        for gap in gap_analysis["identified_gaps"]
    ]
    challenges.extend(
        {
            "challenge_type": "alignment",
            "description": item["description"],
            "impact_assessment": "moderate",
            "mitigation_strategy": item["resolution_strategy"],
            "resolution_confidence": 0.75,
        }
        for item in gap_analysis["contradictions"]
    )

    return {
        "project_overview": {
            "project_id": combined["project_id"],
            "project_title": combined["project_title"],
            "project_type": "creative_synthesis" if output_type == "mixed" else "content_creation",
            "complexity_level": metadata.get("complexity_assessment", "moderate"),
            "estimated_scope": _project_scope(combined),
            "success_probability": _success_probability(
                float(metadata.get("completeness_score", 0)),
                float(metadata.get("query_asset_alignment_score", 0)),
                gap_analysis["identified_gaps"],
            ),
        },
        "unified_creative_direction": {
            "core_concept": synthesis["unified_creative_direction"],
            "visual_approach": synthesis["style_fusion_strategy"],
            "style_direction": synthesis["style_fusion_strategy"],
            "mood_atmosphere": synthesis["mood_integration_plan"],
            "narrative_approach": synthesis.get("narrative_structure"),
            "brand_voice": synthesis.get("brand_voice_integration"),
        },
        "asset_utilization": {
            "total_assets": assets.get("total_assets", len(entries)),
            "asset_roles": {
                entry["asset_id"]: _bucket_for(entry["asset_id"], combined) or DEFAULT_ASSET_ROLE
                for entry in entries
            },
            "quality_requirements": ["professional_standard", "technically_sound"],
            "optimization_opportunities": ["enhance_quality", "optimize_format", "ensure_consistency"],
        },
        "asset_utilization_strategy": {
            "primary_content_plan": {
                "asset_count": len(primary),
                "utilization_approach": (
                    f"Utilize {len(primary)} primary assets as main content foundation"
                    if primary
                    else "No primary assets identified"
                ),
                "enhancement_strategy": (
                    "Apply quality enhancement and optimization to primary assets"
                    if primary
                    else "No enhancement needed"
                ),
                "expected_output_quality": TECHNICAL_TARGETS.get(
                    combined["production_recommendations"]["quality_targets"]["technical_quality"], "good"
                ),
            },
            "reference_material_plan": {
                "reference_count": len(reference),
                "extraction_strategy": (
                    f"Extract style and aesthetic elements from {len(reference)} reference assets"
                    if reference
                    else "No reference material available"
                ),
                "application_method": (
                    "Apply extracted reference elements to enhance primary content"
                    if reference
                    else "No reference application needed"
                ),
            },
            "supporting_elements_plan": {
                "supporting_count": len(supporting),
                "integration_approach": (
                    f"Integrate {len(supporting)} supporting assets as complementary elements"
                    if supporting
                    else "No supporting elements to integrate"
                ),
                "enhancement_needs": ["Quality optimization", "Format standardization"] if supporting else [],
            },
        },
        "conflict_resolutions": list(combined.get("conflict_resolutions", [])),
        "identified_challenges": challenges,
        "project_feasibility": _feasibility(combined),
    }


def create_creative_options(combined: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
    synthesis = combined["creative_synthesis"]
    direction = synthesis["unified_creative_direction"]
    approach_name = re.sub(r"[^\w\s]", "", " ".join(direction.split()[:3])) or "Standard Approach"
    modifiers_style = combined["unified_constraints"]["creative_constraints"]

    section: Dict[str, Any] = {
        "primary_creative_direction": {
            "approach_name": approach_name,
            "description": direction,
            "style_elements": [part.strip() for part in synthesis["style_fusion_strategy"].split(",")][:5],
            "mood_elements": list(modifiers_style.get("mood_requirements", []))[:5]
            or [synthesis["mood_integration_plan"]],
            "technical_approach": "AI-enhanced processing with quality optimization",
            "expected_outcome": combined["unified_intent"]["target_outcome"],
            "confidence_score": combined["synthesis_metadata"].get("synthesis_confidence", 0),
        },
        "option_catalog": list(combined.get("creative_options", [])),
        "alternative_approaches": [],
        "creative_enhancements": [],
    }
    if options.get("include_alternative_approaches", True):
        section["alternative_approaches"].append(
            {
                "approach_name": "Minimalist Approach",
                "description": "Simplified processing with focus on core requirements",
                "key_differences": ["Reduced complexity", "Faster processing"],
                "trade_offs": {
                    "advantages": ["Faster delivery", "Lower resource usage"],
                    "disadvantages": ["Less detailed output", "Limited customization"],
                },
                "suitability_score": 0.7,
            }
        )
    if options.get("include_creative_enhancements", True):
        section["creative_enhancements"].append(
            {
                "enhancement_type": "style",
                "enhancement_name": "Visual Polish",
                "description": "Enhanced visual quality and aesthetic appeal",
                "impact_on_outcome": "Improved visual impact and professional appearance",
                "implementation_complexity": "moderate",
                "recommended": True,
            }
        )
    return section


def _optimization_type(kind: str) -> str:
    if contains_any(kind, ("speed", "performance", "fast")):
        return "speed"
    if contains_any(kind, ("cost", "budget", "price")):
        return "cost"
    if contains_any(kind, ("complexity", "simplify")):
        return "complexity"
    if contains_any(kind, ("automation", "auto")):
        return "automation"
    return "quality"


def create_pipeline_recommendations(combined: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
    production = combined["production_recommendations"]
    detailed = options.get("include_detailed_pipeline", True)
    focus = options.get("optimization_focus", "balanced")

    workflow = []
    for step in production["recommended_pipeline"]:
        number = step["step_number"]
        item: Dict[str, Any] = {
            "step_number": number,
            "step_name": step["step_name"],
            "step_category": step_category(step["step_name"]),
            "description": step["description"],
            "estimated_time": step["estimated_time"],
            "complexity_level": COMPLEXITY_LEVELS.get(step["complexity_level"], "intermediate"),
            "success_probability": step_success_probability(step, number > 1),
        }
        if detailed:
            item["input_requirements"] = list(step.get("input_assets", []))
            item["output_deliverables"] = [step["output_expectation"]]
            item["tools_and_models"] = [
                {
                    "tool_type": tool_type(tool),
                    "tool_name": tool,
                    "purpose": TOOL_PURPOSES.get(tool, f"Support {step['step_name']} process"),
                    "alternatives": TOOL_ALTERNATIVES.get(tool, []),
                }
                for tool in step.get("tools_needed", [])
            ]
            item["dependencies"] = [f"Step {number - 1}"] if number > 1 else []
        workflow.append(item)

    targets = production["quality_targets"]
    probabilities = [step["success_probability"] for step in workflow]
    return {
        "recommended_workflow": workflow,
        "overall_success_probability": round(sum(probabilities) / len(probabilities), 2) if probabilities else 0,
        "quality_targets": {
            "technical_quality_target": TECHNICAL_TARGETS.get(targets["technical_quality"], "good"),
            "creative_quality_target": targets["creative_quality"],
            "consistency_target": targets["consistency_level"],
            "polish_level_target": targets["polish_level"],
        },
        "optimization_recommendations": [
            {
                "optimization_type": _optimization_type(item["optimization_type"]),
                "recommendation": item["suggestion"],
                "expected_impact": item["impact"],
                "implementation_effort": item["implementation_effort"],
                "priority_level": priority_level(_optimization_type(item["optimization_type"]), focus),
            }
            for item in production["optimization_suggestions"]
        ],
        "fallback_strategies": [
            {
                "scenario": "Primary assets fail processing",
                "fallback_approach": "Use alternative assets or generate new content",
                "quality_impact": "May result in slightly different output",
                "timeline_impact": "Additional 10-15 minutes processing time",
            }
        ],
        "success_metrics": {
            "completion_criteria": ["All assets processed", "Quality targets met", "Output delivered on time"],
            "quality_checkpoints": [
                "Asset analysis complete",
                "Processing pipeline executed",
                "Final output validated",
            ],
            "expected_timeline": estimate_project_timeline(production["recommended_pipeline"]),
            "resource_requirements": ["AI processing credits", "Storage space", "Network bandwidth"],
        },
    }


def _warnings(assets: Dict[str, Any], combined: Dict[str, Any]) -> List[Dict[str, str]]:
    notes = []
    for entry in assets.get("asset_analyses", []):
        if not entry["processing_info"]["success"]:
            errors = entry["processing_info"].get("error_messages") or ["unknown error"]
            notes.append(
                {
                    "type": "warning",
                    "message": f"Asset {entry['asset_id']} could not be analyzed: {errors[0]}",
                    "severity": "medium",
                    "category": "technical",
                }
            )
    for gap in combined["gap_analysis"]["identified_gaps"]:
        if gap["impact_level"] in ("critical", "high"):
            notes.append(
                {
                    "type": "warning",
                    "message": gap["description"],
                    "severity": gap["impact_level"],
                    "category": "creative" if gap["gap_type"] == "style" else "resource",
                }
            )
    for item in combined.get("conflict_resolutions", []):
        notes.append(
            {
                "type": "note",
                "message": f"{item['description']}: {item['resolution']}",
                "severity": "low",
                "category": "technical",
            }
        )
    if combined.get("session_mode") == "asset_free":
        notes.append(
            {
                "type": "limitation",
                "message": "No assets supplied; plan derived from the request alone",
                "severity": "info",
                "category": "resource",
            }
        )
    return notes


def create_processing_insights(
    query: Dict[str, Any],
    assets: Dict[str, Any],
    combined: Dict[str, Any],
    confidences: Dict[str, float],
    step_timings: Dict[str, int],
    include_full: bool,
) -> Dict[str, Any]:
    metadata = combined["synthesis_metadata"]
    total = assets.get("total_assets", 0)
    summary = assets.get("summary", {})
    insights: Dict[str, Any] = {
        "model_usage_summary": [],
        "confidence_breakdown": confidences,
        "quality_assessments": {
            "input_quality_score": summary.get("overall_quality_score", 0),
            "analysis_thoroughness": metadata.get("completeness_score", 0),
            "output_completeness": metadata.get("completeness_score", 0),
            "recommendation_reliability": metadata.get("recommendations_confidence", 0),
        },
        "warnings_and_notes": _warnings(assets, combined),
    }
    if include_full:
        query_model = query.get("processing_metadata", {}).get("model_used")
        insights["model_usage_summary"] = [
            {
                "step_name": "Query Analysis",
                "models_used": [query_model] if query_model else [],
                "processing_time": step_timings.get("step1", 0),
                "success_rate": confidences["query_analysis_confidence"],
            },
            {
                "step_name": "Asset Analysis",
                "models_used": list(assets.get("processing_metadata", {}).get("models_used", [])),
                "processing_time": step_timings.get("step2", 0),
                "success_rate": round(assets.get("successful_analyses", 0) / total, 3) if total else 1.0,
            },
            {
                "step_name": "Synthesis & Combination",
                "models_used": list(metadata.get("ai_models_used", [])),
                "processing_time": step_timings.get("step3", 0),
                "success_rate": confidences["synthesis_confidence"],
            },
        ]
    return insights


def create_comprehensive_summary(
    query: Dict[str, Any],
    assets: Dict[str, Any],
    combined: Dict[str, Any],
    metadata: Dict[str, Any],
    global_understanding: Dict[str, Any],
    pipeline: Dict[str, Any],
    detail_level: str,
) -> Dict[str, Any]:
    prompt = query.get("original_prompt", "")
    intent = query.get("intent", {}).get("primary_output_type", "mixed")
    output_type = combined["unified_intent"]["primary_output_type"]
    constraints = query.get("constraints", {})
    entries = assets.get("asset_analyses", [])

    summary: Dict[str, Any] = {
        "user_request": {
            "original_prompt": prompt,
            "normalized_prompt": query.get("normalized_prompt", ""),
            "user_intent_description": f'Create {intent} content based on: "{prompt}"',
            "reformulated_prompt": query.get("normalized_prompt", ""),
            "prompt_clarity_score": assess_prompt_clarity(prompt),
            "suggested_improvements": generate_prompt_improvements(prompt, intent),
            "ui_selections": {
                "intent": output_type,
                "duration_seconds": constraints.get("duration_seconds"),
                "aspect_ratio": constraints.get("aspect_ratio"),
                "platform": (constraints.get("platform") or [None])[0],
            },
        },
        "creative_synthesis": {
            "project_id": combined["project_id"],
            "session_mode": combined.get("session_mode", "asset_driven"),
            "unified_intent": combined["unified_intent"],
            "asset_utilization": combined["asset_utilization"],
            "gap_analysis": combined["gap_analysis"],
            "conflict_resolutions": combined.get("conflict_resolutions", []),
            "synthesis_metadata": combined["synthesis_metadata"],
            "production_recommendations": combined["production_recommendations"],
        },
        "production_readiness": {
            "overall_confidence": metadata["analyzer_confidence"],
            "quality_score": metadata["quality_score"],
            "completion_status": metadata["completion_status"],
            "missing_elements": global_understanding["identified_challenges"],
            "asset_roles_assigned": {
                entry["asset_id"]: determine_asset_role_from_analysis(entry, output_type, combined)
                for entry in entries
            },
            "estimated_success_probability": pipeline["overall_success_probability"],
        },
    }
    if detail_level not in SUMMARY_LEVELS:
        summary["assets_comprehensive"] = [
            {
                "id": entry["asset_id"],
                "type": entry["asset_type"],
                "url": entry.get("asset_url"),
                "size_bytes": entry["metadata"].get("file_size") or 0,
                "user_description": entry.get("user_description") or "No description provided",
                "ai_analysis": {
                    "caption": entry["content_analysis"].get("primary_description") or "No analysis available",
                    "objects_detected": list(entry["content_analysis"].get("objects_detected", [])),
                    "style_analysis": entry["content_analysis"].get("style_analysis") or "unknown",
                    "mood_assessment": entry["content_analysis"].get("mood_assessment") or "unknown",
                    "quality_score": entry["metadata"].get("quality_score") or 0,
                    "recommended_edits": list(entry["processing_needs"].get("recommended_tools", [])),
                },
                "technical_metadata": {
                    "resolution": (
                        "{width}x{height}".format(**entry["metadata"]["dimensions"])
                        if entry["metadata"].get("dimensions")
                        else "unknown"
                    ),
                    "duration_seconds": entry["metadata"].get("duration_seconds"),
                    "format": entry["metadata"].get("format", "unknown"),
                    "dimensions": entry["metadata"].get("dimensions"),
                },
            }
            for entry in entries
        ]
    return summary


# -- entry point ---------------------------------------------------------------


def create_final_analysis_output(
    query_result: Dict[str, Any],
    asset_result: Dict[str, Any],
    combined: Dict[str, Any],
    options: Optional[Dict[str, Any]] = None,
    *,
    analysis_id: Optional[str] = None,
    timestamp: str = "",
    step_timings: Optional[Dict[str, int]] = None,
) -> Result:
    """Build the final analysis document from the three earlier step results.

    ``analysis_id`` defaults to the combined project id. Processing times come
    from ``step_timings`` (``step1``..``step3`` in milliseconds).
    """

    options = options or {}
    step_timings = step_timings or {}
    if not query_result or asset_result is None or not combined:
        return Result.fail("Query, asset and combined analyses are required for summarization")

    detail_level = options.get("detail_level", "standard")
    analysis_id = analysis_id or combined.get("project_id", "")
    try:
        confidences = _confidences(query_result, asset_result, combined)
        metadata = create_analysis_metadata(
            query_result,
            asset_result,
            combined,
            confidences,
            analysis_id=analysis_id,
            timestamp=timestamp,
            total_processing_time_ms=sum(step_timings.get(step, 0) for step in ("step1", "step2", "step3")),
            pipeline_version=options.get("pipeline_version", "2.0.0"),
        )
        global_understanding = create_global_understanding(query_result, asset_result, combined)
        pipeline = create_pipeline_recommendations(combined, options)
        output = {
            "analysis_metadata": metadata,
            "query_summary": create_query_summary(query_result, combined),
            "assets_analysis": create_assets_analysis(
                asset_result, combined, step_timings.get("step2", 0), detail_level
            ),
            "global_understanding": global_understanding,
            "creative_options": create_creative_options(combined, options),
            "pipeline_recommendations": pipeline,
            "processing_insights": create_processing_insights(
                query_result,
                asset_result,
                combined,
                confidences,
                step_timings,
                options.get("include_processing_insights", True),
            ),
            "comprehensive_summary": create_comprehensive_summary(
                query_result, asset_result, combined, metadata, global_understanding, pipeline, detail_level
            ),
        }
    except (KeyError, TypeError, ValueError) as exc:
        logger.exception("%s - summary creation failed", analysis_id)
        return Result.fail(f"Summary creation failed: {exc}")

    logger.info(
        "%s - final output ready (quality %s/10, status %s)",
        analysis_id,
        metadata["quality_score"],
        metadata["completion_status"],
    )
    return Result.ok(output)
