"""Step 3: merge the query analysis and the asset analyses into one project plan.

The combiner is rule based. An optional text-model call adds a creative
direction and target outcome; when it fails the rule-based defaults stand.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Template

from .errors import ProviderError
from .result import Result
from .utils import clamp, contains_any, generate_id, unique, utc_now_iso

logger = logging.getLogger(__name__)

SYNTHESIS_PROMPT_TEMPLATE = Template(
    """You are a creative director combining a user's request with the media they uploaded.

USER QUERY: "{{ original_prompt }}"
NORMALIZED: "{{ normalized_prompt }}"
INTENT: {{ intent }} ({{ confidence }}% confidence)
Style: {{ style or "unspecified" }}
Mood: {{ mood or "unspecified" }}
Theme: {{ theme or "unspecified" }}

AVAILABLE ASSETS:
{%- for line in asset_lines %}
- {{ line }}
{%- else %}
- none
{%- endfor %}

ASSET SUMMARY: {{ breakdown }}
UNIFIED OUTPUT TYPE: {{ output_type }}

Answer with exactly three lines:
Creative Direction: <one sentence on the overall creative direction>
Target Outcome: <one sentence on the finished deliverable>
Reasoning: <one sentence on how the assets support the request>"""
)

DEFAULT_DIRECTION = "Standard content creation following user requirements"
SYNTHESIS_DIRECTION = "Professional content creation with strategic asset utilization"

COLOR_PALETTE_WORDS = ("red", "blue", "green", "yellow", "orange", "purple", "pink", "brown", "black", "white")
BRAND_WORDS = ("brand", "logo", "company", "business", "corporate")
BRAND_VOICE_WORDS = BRAND_WORDS + ("professional",)

PLATFORM_REQUIREMENTS = {
    "instagram": {"max_duration": 60, "aspect_ratios": ["1:1", "9:16"]},
    "youtube": {"max_duration": 3600, "aspect_ratios": ["16:9"]},
    "tiktok": {"max_duration": 180, "aspect_ratios": ["9:16"]},
}

CREATION_TOOLS = {
    "video": ["video_editor", "compositing", "audio_sync", "transition_effects"],
    "image": ["image_editor", "compositing", "color_correction", "style_transfer"],
    "audio": ["audio_editor", "mixing", "mastering", "effects_processing"],
}

RESOLUTION_TRIM = "trim to requested duration"
RESOLUTION_EXTEND = "extend with supporting footage or loop"
RESOLUTION_REFRAME = "reframe to target aspect ratio"
RESOLUTION_GENERATE = "generate missing media"


# -- small helpers -------------------------------------------------------------


def aspect_label(width: int, height: int) -> str:
    ratio = width / height if height else 0
    if abs(ratio - 16 / 9) < 0.1:
        return "16:9"
    if abs(ratio - 1) < 0.1:
        return "1:1"
    if abs(ratio - 9 / 16) < 0.1:
        return "9:16"
    return f"{width}:{height}"


def _dims(entry: Dict[str, Any]) -> Optional[Tuple[int, int]]:
    dims = (entry.get("metadata") or {}).get("dimensions")
    if isinstance(dims, dict) and dims.get("width") and dims.get("height"):
        return int(dims["width"]), int(dims["height"])
    return None


def _alignment(entry: Dict[str, Any]) -> float:
    return float(entry.get("alignment_with_query", {}).get("alignment_score") or 0)


def _quality(entry: Dict[str, Any]) -> float:
    return float(entry.get("metadata", {}).get("quality_score") or 0)


def _succeeded(entry: Dict[str, Any]) -> bool:
    return bool(entry.get("processing_info", {}).get("success"))


def _ratio(part: int, total: int) -> float:
    return part / total if total else 0.0


def analyze_asset_capabilities(entries: List[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    sized = [dims for dims in (_dims(entry) for entry in entries) if dims]
    if not sized:
        return {"most_common_aspect_ratio": None, "highest_resolution": None}
    ratios = Counter(aspect_label(w, h) for w, h in sized)
    width, height = max(sized, key=lambda dims: dims[0] * dims[1])
    return {
        "most_common_aspect_ratio": ratios.most_common(1)[0][0],
        "highest_resolution": f"{width}x{height}",
    }


def derive_quality_target(overall_score: float) -> str:
    if overall_score >= 9:
        return "cinema"
    if overall_score >= 7:
        return "professional"
    if overall_score >= 5:
        return "high"
    return "standard"


def derive_format_requirements(output_type: str, platforms: List[str]) -> List[str]:
    web = "web" in platforms
    if output_type == "video":
        return ["mp4", "webm"] if web else ["mp4"]
    if output_type == "image":
        return ["jpg", "png", "webp"] if web else ["jpg", "png"]
    if output_type == "audio":
        return ["mp3", "ogg"] if web else ["mp3"]
    return []


def derive_budget_tier(enhancement_ratio: float, spec_count: int) -> str:
    if enhancement_ratio > 0.7 or spec_count > 3:
        return "high"
    if enhancement_ratio > 0.3 or spec_count > 1:
        return "medium"
    return "low"


def derive_complexity_level(type_count: int, enhancement_ratio: float, gap_count: int) -> str:
    if type_count > 2 and enhancement_ratio > 0.5 and gap_count > 3:
        return "advanced"
    if type_count > 1 and enhancement_ratio > 0.3 and gap_count > 2:
        return "complex"
    if type_count > 1 or enhancement_ratio > 0.2 or gap_count > 1:
        return "moderate"
    return "simple"


def derive_automation_level(enhancement_ratio: float) -> str:
    if enhancement_ratio > 0.7:
        return "manual_review"
    if enhancement_ratio > 0.3:
        return "semi_auto"
    return "full_auto"


def generate_project_title(query: Dict[str, Any], output_type: str) -> str:
    words = [word for word in query.get("normalized_prompt", "").split() if len(word) > 3][:3]
    label = output_type.capitalize()
    if words:
        return f"{label} Project: {' '.join(words)}"
    return f"{label} Content Creation Project"


# -- unified intent ------------------------------------------------------------


def _asset_lines(entries: List[Dict[str, Any]]) -> List[str]:
    lines = []
    for entry in entries:
        description = entry.get("content_analysis", {}).get("primary_description", "")
        lines.append(f"{entry['asset_type']}: {description} (Quality: {_quality(entry):g})")
    return lines


def parse_synthesis_response(text: str, output_type: str) -> Dict[str, str]:
    parsed = {
        "creative_direction": SYNTHESIS_DIRECTION,
        "target_outcome": f"Create high-quality {output_type} content that maximizes asset potential",
        "reasoning": "",
    }
    keys = {
        "creative direction": "creative_direction",
        "target outcome": "target_outcome",
        "reasoning": "reasoning",
    }
    for line in text.splitlines():
        label, sep, value = line.partition(":")
        field = keys.get(label.strip().strip("-* ").lower())
        if sep and field and value.strip():
            parsed[field] = value.strip()
    return parsed


def synthesize_creative_direction(
    query: Dict[str, Any],
    asset_result: Dict[str, Any],
    output_type: str,
    text_client,
    options: Dict[str, Any],
) -> Optional[Dict[str, str]]:
    """Ask the text model for a creative direction; ``None`` when unavailable."""

    if text_client is None or not options.get("enable_ai_synthesis", True):
        return None
    chain = text_client.resolve_chain(options.get("synthesis_model", "auto"))
    if not chain:
        return None
    modifiers = query.get("modifiers", {})
    intent = query.get("intent", {})
    prompt = SYNTHESIS_PROMPT_TEMPLATE.render(
        original_prompt=query.get("original_prompt", ""),
        normalized_prompt=query.get("normalized_prompt", ""),
        intent=intent.get("primary_output_type", "mixed"),
        confidence=round(float(intent.get("confidence", 0)) * 100),
        style=", ".join(modifiers.get("style", [])),
        mood=", ".join(modifiers.get("mood", [])),
        theme=", ".join(modifiers.get("theme", [])),
        asset_lines=_asset_lines([e for e in asset_result.get("asset_analyses", []) if _succeeded(e)]),
        breakdown=", ".join(
            f"{count} {kind}" for kind, count in asset_result.get("summary", {}).get("asset_type_breakdown", {}).items()
        )
        or "none",
        output_type=output_type,
    )
    model = chain[0]
    try:
        reply = text_client.chat(
            [{"role": "user", "content": prompt}],
            model=model,
            temperature=0.2,
            max_tokens=1000,
        )
    except ProviderError as exc:
        logger.warning("Creative synthesis with %s failed, using rule-based direction: %s", model, exc)
        return None
    parsed = parse_synthesis_response(reply, output_type)
    parsed["model"] = model
    return parsed


def build_unified_intent(
    query: Dict[str, Any],
    asset_result: Dict[str, Any],
    synthesis: Optional[Dict[str, str]],
) -> Dict[str, Any]:
    intent = query.get("intent", {})
    output_type = intent.get("primary_output_type", "mixed")
    confidence = float(intent.get("confidence", 0.5))
    reasoning = intent.get("reasoning", "")
    breakdown = asset_result.get("summary", {}).get("asset_type_breakdown", {})

    reinforced = (
        (output_type == "image" and breakdown.get("image"))
        or (output_type == "video" and (breakdown.get("video") or breakdown.get("image")))
        or (output_type == "audio" and breakdown.get("audio"))
    )
    if reinforced:
        confidence = min(1.0, confidence + 0.1)
        reasoning = f"{reasoning} Assets reinforce the {output_type} intent.".strip()

    secondary: List[str] = []
    if len(breakdown) > 1:
        if output_type == "video":
            secondary = [kind for kind in breakdown if kind != "video"]
        elif output_type == "image" and breakdown.get("video"):
            secondary = ["video"]
            output_type = "mixed"

    if synthesis:
        direction = synthesis["creative_direction"]
        outcome = synthesis["target_outcome"]
        if synthesis.get("reasoning"):
            reasoning = f"{reasoning} AI synthesis: {synthesis['reasoning']}".strip()
    else:
        direction = DEFAULT_DIRECTION
        outcome = f"Create {output_type} content as specified"

    return {
        "primary_output_type": output_type,
        "secondary_outputs": secondary,
        "confidence": round(confidence, 3),
        "reasoning": reasoning,
        "creative_direction": direction,
        "target_outcome": outcome,
    }


# -- constraints ---------------------------------------------------------------


def build_unified_constraints(
    query: Dict[str, Any],
    asset_result: Dict[str, Any],
    output_type: str,
    gap_count: int,
) -> Dict[str, Any]:
    constraints = query.get("constraints", {})
    modifiers = query.get("modifiers", {})
    entries = [e for e in asset_result.get("asset_analyses", []) if _succeeded(e)]
    summary = asset_result.get("summary", {})
    total = asset_result.get("total_assets", 0)
    enhancement_ratio = _ratio(len(summary.get("enhancement_needed_assets", [])), total)
    capabilities = analyze_asset_capabilities(entries)
    platforms = constraints.get("platform") or ["web"]

    palette: List[str] = []
    for entry in entries:
        text = entry.get("content_analysis", {}).get("detailed_analysis", "").lower()
        palette.extend(color for color in COLOR_PALETTE_WORDS if color in text)

    return {
        "output_specifications": {
            "image_count": constraints.get("image_count") or (1 if output_type == "image" else None),
            "video_duration_seconds": constraints.get("duration_seconds") or (30 if output_type == "video" else None),
            "audio_length_seconds": constraints.get("audio_length_seconds")
            or (30 if output_type == "audio" else None),
            "aspect_ratio": constraints.get("aspect_ratio") or capabilities["most_common_aspect_ratio"] or "16:9",
            "resolution": constraints.get("resolution") or capabilities["highest_resolution"] or "1920x1080",
            "quality_target": derive_quality_target(summary.get("overall_quality_score", 0)),
            "format_requirements": derive_format_requirements(output_type, platforms),
        },
        "platform_constraints": {
            "target_platforms": platforms,
            "platform_specific_requirements": {
                platform: PLATFORM_REQUIREMENTS[platform.lower()]
                for platform in platforms
                if platform.lower() in PLATFORM_REQUIREMENTS
            },
            "distribution_format": (
                ("web-optimized-mp4" if output_type == "video" else "web-optimized") if "web" in platforms else "standard"
            ),
        },
        "creative_constraints": {
            "required_style": (modifiers.get("style") or [None])[0],
            "mood_requirements": list(modifiers.get("mood", [])),
            "color_palette": unique(palette)[:5],
            "brand_requirements": (
                "Brand consistency and professional presentation required"
                if contains_any(query.get("original_prompt", ""), BRAND_WORDS)
                else None
            ),
            "accessibility_requirements": ["standard_compliance"],
        },
        "production_constraints": {
            "budget_tier": derive_budget_tier(enhancement_ratio, len(modifiers.get("technical_specs", []))),
            "timeline": constraints.get("timeline") or "standard",
            "complexity_level": derive_complexity_level(
                len(summary.get("asset_type_breakdown", {})), enhancement_ratio, gap_count
            ),
            "automation_level": derive_automation_level(enhancement_ratio),
        },
    }


# -- asset utilization ---------------------------------------------------------


def _asset_role(score: float) -> str:
    if score > 0.8:
        return "hero"
    if score > 0.6:
        return "main_content"
    if score > 0.4:
        return "key_element"
    return "supporting"


def _processing_priority(score: float, quality: float) -> str:
    combined = (score + quality / 10) / 2
    if combined > 0.8:
        return "critical"
    if combined > 0.6:
        return "high"
    if combined > 0.4:
        return "medium"
    return "low"


def _enhancement_plan(needs: Dict[str, Any]) -> List[str]:
    plan = []
    if needs.get("requires_upscaling"):
        plan.append("Quality upscaling")
    if needs.get("requires_enhancement"):
        plan.append("Content enhancement")
    if needs.get("requires_style_transfer"):
        plan.append("Style harmonization")
    if needs.get("requires_noise_reduction"):
        plan.append("Noise reduction")
    return plan


def _usage_plan(entry: Dict[str, Any], output_type: str) -> str:
    role = entry["alignment_with_query"]["role_in_project"]
    if role == "primary_content":
        if entry["asset_type"] == output_type:
            return f"Direct use as primary {entry['asset_type']} content with quality optimization"
        return f"Convert {entry['asset_type']} to {output_type} format while preserving key elements"
    return f"Integrate as {role} with appropriate processing for {output_type} output"


def _reference_type(entry: Dict[str, Any], modifiers: Dict[str, Any]) -> str:
    text = entry.get("content_analysis", {}).get("detailed_analysis", "").lower()
    if modifiers.get("style") and "style" in text:
        return "style_reference"
    if modifiers.get("mood") and "mood" in text:
        return "mood_reference"
    if "quality" in text or "resolution" in text:
        return "technical_reference"
    return "content_reference"


REFERENCE_APPLICATIONS = {
    "style_reference": "Extract visual style elements for consistent application across output",
    "mood_reference": "Use mood and atmosphere as guide for emotional tone",
    "technical_reference": "Reference technical specifications for quality targets",
    "content_reference": "Use as content inspiration and structural reference",
}


def _extraction_focus(entry: Dict[str, Any]) -> List[str]:
    content = entry.get("content_analysis", {})
    focus = []
    if content.get("style_analysis"):
        focus.append("Visual style elements")
    if content.get("mood_assessment"):
        focus.append("Mood and atmosphere")
    if _quality(entry) > 7:
        focus.append("Technical quality standards")
    if content.get("objects_detected"):
        focus.append("Content composition elements")
    return focus or ["General reference characteristics"]


def _support_role(entry: Dict[str, Any], output_type: str) -> str:
    if entry["asset_type"] == "audio":
        return "audio_layer"
    if entry["asset_type"] == "video" and output_type == "video":
        return "b_roll"
    if entry["asset_type"] == "image" and output_type == "video":
        return "overlay"
    if 0 < _quality(entry) < 6:
        return "texture"
    return "background"


INTEGRATION_METHODS = {
    "audio_layer": "Layer as background audio or sound effects",
    "b_roll": "Integrate as B-roll footage with smooth transitions",
    "overlay": "Apply as overlay element with appropriate blending",
    "texture": "Use for texture and depth enhancement",
    "background": "Integrate as background element with subtle presence",
}


def _alternative_usage(entry: Dict[str, Any], output_type: str) -> str:
    if _alignment(entry) > 0.1:
        return f"Consider for future {output_type} projects or alternative creative directions"
    if _quality(entry) > 7:
        return "High-quality asset suitable for different project types or client presentations"
    return "Archive for potential future use or creative experimentation"


def build_asset_utilization(
    query: Dict[str, Any], asset_result: Dict[str, Any], output_type: str
) -> Dict[str, List[Dict[str, Any]]]:
    modifiers = query.get("modifiers", {})
    buckets: Dict[str, List[Dict[str, Any]]] = {
        "primary_assets": [],
        "reference_assets": [],
        "supporting_assets": [],
        "unused_assets": [],
    }
    for entry in asset_result.get("asset_analyses", []):
        asset_id = entry["asset_id"]
        if not _succeeded(entry):
            buckets["unused_assets"].append(
                {
                    "asset_id": asset_id,
                    "reason": "Analysis failed",
                    "alternative_usage": "Re-upload or replace the asset and run the analysis again",
                }
            )
            continue

        score = _alignment(entry)
        role = entry["alignment_with_query"]["role_in_project"]
        needs = entry.get("processing_needs", {})
        if role == "primary_content" and score > 0.6:
            buckets["primary_assets"].append(
                {
                    "asset_id": asset_id,
                    "role": _asset_role(score),
                    "usage_plan": _usage_plan(entry, output_type),
                    "processing_priority": _processing_priority(score, _quality(entry)),
                    "enhancement_plan": _enhancement_plan(needs),
                }
            )
        elif role == "reference_material" or 0.3 < score <= 0.6:
            reference_type = _reference_type(entry, modifiers)
            buckets["reference_assets"].append(
                {
                    "asset_id": asset_id,
                    "reference_type": reference_type,
                    "application": REFERENCE_APPLICATIONS[reference_type],
                    "extraction_focus": _extraction_focus(entry),
                }
            )
        elif role == "supporting_element" or score > 0.1:
            support_role = _support_role(entry, output_type)
            buckets["supporting_assets"].append(
                {
                    "asset_id": asset_id,
                    "support_role": support_role,
                    "integration_method": INTEGRATION_METHODS[support_role],
                    "processing_needs": list(needs.get("recommended_tools", [])),
                }
            )
        else:
            buckets["unused_assets"].append(
                {
                    "asset_id": asset_id,
                    "reason": f"Low alignment ({score * 100:.1f}%) with project intent",
                    "alternative_usage": _alternative_usage(entry, output_type),
                }
            )
    return buckets


# -- gaps, contradictions and conflicts ----------------------------------------


def _distinct_styles(entries: List[Dict[str, Any]]) -> List[str]:
    styles = [e.get("content_analysis", {}).get("style_analysis") for e in entries]
    return unique(style for style in styles if style and style != "unknown")


def build_gap_analysis(
    query: Dict[str, Any],
    asset_result: Dict[str, Any],
    utilization: Dict[str, List[Dict[str, Any]]],
    output_type: str,
) -> Dict[str, List[Dict[str, Any]]]:
    modifiers = query.get("modifiers", {})
    constraints = query.get("constraints", {})
    summary = asset_result.get("summary", {})
    entries = [e for e in asset_result.get("asset_analyses", []) if _succeeded(e)]

    gaps: List[Dict[str, Any]] = []
    if not utilization["primary_assets"]:
        gaps.append(
            {
                "gap_type": "content",
                "description": "No primary content assets identified for the project",
                "impact_level": "critical",
                "suggested_resolution": "Generate primary content or upload assets that match the request",
                "alternative_solutions": ["Promote the best reference asset", "Generate content from the prompt"],
            }
        )
    if not modifiers.get("style") and not utilization["reference_assets"]:
        gaps.append(
            {
                "gap_type": "style",
                "description": "No style direction in the request and no reference assets",
                "impact_level": "high",
                "suggested_resolution": "Apply a platform-appropriate default style",
                "alternative_solutions": ["Ask the user for a style reference", "Derive style from the primary assets"],
            }
        )
    if output_type == "video" and not constraints.get("duration_seconds"):
        gaps.append(
            {
                "gap_type": "technical",
                "description": "Video duration not specified",
                "impact_level": "medium",
                "suggested_resolution": "Use a 30 second default duration",
                "alternative_solutions": ["Match the length of the longest video asset"],
            }
        )
    if entries and summary.get("overall_quality_score", 0) < 6:
        gaps.append(
            {
                "gap_type": "quality",
                "description": "Overall asset quality is below production level",
                "impact_level": "medium",
                "suggested_resolution": "Upscale and enhance assets before composition",
                "alternative_solutions": ["Replace low quality assets", "Generate higher quality substitutes"],
            }
        )

    contradictions: List[Dict[str, Any]] = []
    breakdown = summary.get("asset_type_breakdown", {})
    if query.get("intent", {}).get("primary_output_type") == "video" and not breakdown.get("video"):
        contradictions.append(
            {
                "contradiction_type": "intent_vs_assets",
                "description": "Video output requested but no video assets were provided",
                "affected_elements": ["intent", "assets"],
                "resolution_strategy": "Animate still assets or generate video footage",
                "impact_assessment": "Production relies on generated motion",
            }
        )
    styles = _distinct_styles(entries)
    if len(styles) > 2:
        contradictions.append(
            {
                "contradiction_type": "asset_vs_asset",
                "description": f"Assets mix {len(styles)} distinct styles: {', '.join(styles)}",
                "affected_elements": [e["asset_id"] for e in entries],
                "resolution_strategy": "Harmonize assets through style transfer",
                "impact_assessment": "Inconsistent look without harmonization",
            }
        )

    return {
        "identified_gaps": gaps,
        "contradictions": contradictions,
        "missing_elements": detect_missing_elements(constraints, output_type),
    }


def detect_missing_elements(constraints: Dict[str, Any], output_type: str) -> List[Dict[str, Any]]:
    missing: List[Dict[str, Any]] = []
    if not constraints.get("aspect_ratio"):
        missing.append(
            {
                "element_type": "aspect_ratio",
                "description": "Output aspect ratio not specified",
                "importance": "recommended",
                "default_suggestion": "16:9" if output_type == "video" else "1:1",
                "acquisition_method": "infer",
            }
        )
    if not constraints.get("target_audience"):
        missing.append(
            {
                "element_type": "target_audience",
                "description": "Target audience not specified",
                "importance": "recommended",
                "default_suggestion": "General audience",
                "acquisition_method": "infer",
            }
        )

    return missing


def resolve_conflicts(
    query: Dict[str, Any],
    asset_result: Dict[str, Any],
    gap_analysis: Dict[str, List[Dict[str, Any]]],
) -> List[Dict[str, Any]]:
    """Decide how each constraint that the assets cannot satisfy as-is will be handled."""

    constraints = query.get("constraints", {})
    entries = [e for e in asset_result.get("asset_analyses", []) if _succeeded(e)]
    requested_duration = constraints.get("duration_seconds")
    requested_ratio = constraints.get("aspect_ratio")
    resolutions: List[Dict[str, Any]] = []

    if requested_duration:
        longer, shorter = [], []
        for entry in entries:
            duration = entry.get("metadata", {}).get("duration_seconds")
            if entry["asset_type"] != "video" or not duration:
                continue
            if duration > requested_duration:
                longer.append(entry["asset_id"])
            elif duration < requested_duration:
                shorter.append(entry["asset_id"])
        if longer:
            resolutions.append(
                {
                    "type": "duration_exceeds_request",
                    "description": f"Video assets run longer than the requested {requested_duration:g}s",
                    "resolution": RESOLUTION_TRIM,
                    "affected_assets": longer,
                }
            )
        if shorter and not longer:
            resolutions.append(
                {
                    "type": "duration_below_request",
                    "description": f"Video assets are shorter than the requested {requested_duration:g}s",
                    "resolution": RESOLUTION_EXTEND,
                    "affected_assets": shorter,
                }
            )

    if requested_ratio:
        mismatched = [
            entry["asset_id"]
            for entry in entries
            if entry["asset_type"] in ("image", "video") and _dims(entry) and aspect_label(*_dims(entry)) != requested_ratio
        ]
        if mismatched:
            resolutions.append(
                {
                    "type": "aspect_ratio_mismatch",
                    "description": f"Asset framing differs from the requested {requested_ratio}",
                    "resolution": RESOLUTION_REFRAME,
                    "affected_assets": mismatched,
                }
            )

    for contradiction in gap_analysis["contradictions"]:
        if contradiction["contradiction_type"] == "intent_vs_assets":
            resolutions.append(
                {
                    "type": "intent_vs_assets",
                    "description": contradiction["description"],
                    "resolution": RESOLUTION_GENERATE,
                    "affected_assets": [e["asset_id"] for e in entries],
                }
            )

    for item in resolutions:
        if item["type"] == "intent_vs_assets":
            continue
        gap_analysis["contradictions"].append(
            {
                "contradiction_type": "constraint_vs_capability",
                "description": item["description"],
                "affected_elements": list(item["affected_assets"]),
                "resolution_strategy": item["resolution"],
                "impact_assessment": "Assets need processing before they fit the requested output",
            }
        )
    return resolutions


# -- creative synthesis and production plan ------------------------------------


def style_fusion_strategy(primary_styles: List[str], query_styles: List[str]) -> str:
    if not primary_styles and not query_styles:
        return "Apply platform-appropriate default styling"
    if len(primary_styles) == 1 and not query_styles:
        return f"Maintain consistent {primary_styles[0]} style throughout the project"
    if query_styles:
        derived = ", ".join(primary_styles) or "neutral"
        return f"Blend query-specified {', '.join(query_styles)} style with asset-derived {derived} characteristics"
    return f"Harmonize multiple styles ({', '.join(primary_styles)}) into cohesive visual direction"


def mood_integration_plan(asset_moods: List[str], query_moods: List[str]) -> str:
    moods = unique(list(query_moods) + list(asset_moods))
    if not moods:
        return "Maintain neutral, professional mood appropriate for content type"
    if len(moods) == 1:
        return f"Maintain consistent {moods[0]} mood throughout the content"
    return f"Balance {' and '.join(moods[:2])} elements for emotional consistency"


def narrative_structure(primary_count: int) -> str:
    if primary_count <= 1:
        return "Single focal point presentation with clear beginning, middle, and end"
    if primary_count <= 3:
        return "Three-act structure utilizing assets for introduction, development, and conclusion"
    return "Multi-segment narrative with smooth transitions between asset-driven scenes"


def visual_hierarchy(primary: List[Dict[str, Any]], output_type: str) -> List[str]:
    roles = {item["role"] for item in primary}
    hierarchy = [
        label
        for role, label in (
            ("hero", "Hero asset as primary focal point"),
            ("main_content", "Main content assets as secondary focus"),
            ("key_element", "Key elements for context and support"),
            ("supporting", "Supporting elements for depth and texture"),
        )
        if role in roles
    ]
    return hierarchy or [f"Standard {output_type} layout with balanced composition"]


def _audio_visual_alignment(kinds: List[str]) -> str:
    if "audio" in kinds and "video" in kinds:
        return "Synchronize audio elements with video pacing and visual transitions"
    if "audio" in kinds and "image" in kinds:
        return "Align audio tempo and mood with visual rhythm and image transitions"
    if "video" in kinds:
        return "Ensure consistent audio-visual pacing throughout video content"
    return "Maintain consistent pacing appropriate for content type"


def build_creative_synthesis(
    query: Dict[str, Any],
    asset_result: Dict[str, Any],
    utilization: Dict[str, List[Dict[str, Any]]],
    unified_intent: Dict[str, Any],
) -> Dict[str, Any]:
    modifiers = query.get("modifiers", {})
    entries = {e["asset_id"]: e for e in asset_result.get("asset_analyses", []) if _succeeded(e)}
    primary = utilization["primary_assets"]
    primary_styles = unique(
        entries[item["asset_id"]]["content_analysis"].get("style_analysis")
        for item in primary
        if entries[item["asset_id"]]["content_analysis"].get("style_analysis")
    )
    mood_counts = Counter(
        entry["content_analysis"]["mood_assessment"]
        for entry in entries.values()
        if entry["content_analysis"].get("mood_assessment")
    )
    kinds = [entry["asset_type"] for entry in entries.values()]
    output_type = unified_intent["primary_output_type"]

    synthesis: Dict[str, Any] = {
        "unified_creative_direction": unified_intent["creative_direction"],
        "style_fusion_strategy": style_fusion_strategy(primary_styles, list(modifiers.get("style", []))),
        "mood_integration_plan": mood_integration_plan(
            [mood for mood, _ in mood_counts.most_common(3)], list(modifiers.get("mood", []))
        ),
        "visual_hierarchy": visual_hierarchy(primary, output_type),
    }
    if output_type == "video":
        synthesis["narrative_structure"] = narrative_structure(len(primary))
    if "video" in kinds or "audio" in kinds:
        synthesis["audio_visual_alignment"] = _audio_visual_alignment(kinds)
    if contains_any(query.get("original_prompt", ""), BRAND_VOICE_WORDS):
        synthesis["brand_voice_integration"] = (
            "Maintain professional brand consistency across all visual and content elements"
        )
    return synthesis


def _creation_time(output_type: str, asset_count: int) -> str:
    base = 45 if output_type == "video" else 30 if output_type == "audio" else 20
    total = base + asset_count * 10
    return f"{total}-{total + 15} minutes"


def _creation_complexity(asset_count: int) -> str:
    if asset_count >= 5:
        return "expert"
    if asset_count >= 3:
        return "complex"
    if asset_count >= 2:
        return "moderate"
    return "easy"


def build_recommended_pipeline(utilization: Dict[str, List[Dict[str, Any]]], output_type: str) -> List[Dict[str, Any]]:
    primary_ids = [item["asset_id"] for item in utilization["primary_assets"]]
    steps: List[Dict[str, Any]] = []
    if any(item["enhancement_plan"] for item in utilization["primary_assets"]):
        steps.append(
            {
                "step_name": "Asset Enhancement",
                "description": "Enhance and optimize primary assets for production",
                "input_assets": primary_ids,
                "output_expectation": "Production-ready assets with improved quality",
                "tools_needed": ["upscaling", "enhancement", "format_conversion"],
                "estimated_time": "15-30 minutes",
                "complexity_level": "moderate",
            }
        )
    steps.append(
        {
            "step_name": "Content Creation",
            "description": f"Create {output_type} content using prepared assets",
            "input_assets": primary_ids,
            "output_expectation": f"Draft {output_type} content",
            "tools_needed": CREATION_TOOLS.get(output_type, ["content_creator", "asset_manager", "quality_enhancer"]),
            "estimated_time": _creation_time(output_type, len(primary_ids)),
            "complexity_level": _creation_complexity(len(primary_ids)),
        }
    )
    if utilization["supporting_assets"]:
        steps.append(
            {
                "step_name": "Asset Integration",
                "description": "Integrate supporting assets and refine composition",
                "input_assets": primary_ids + [item["asset_id"] for item in utilization["supporting_assets"]],
                "output_expectation": "Integrated content with all assets properly positioned",
                "tools_needed": ["compositing", "blending", "transition_effects"],
                "estimated_time": "20-45 minutes",
                "complexity_level": "moderate",
            }
        )
    steps.append(
        {
            "step_name": "Final Polish",
            "description": "Apply final enhancements and quality assurance",
            "input_assets": ["composed_content"],
            "output_expectation": f"Finished {output_type} ready for delivery",
            "tools_needed": ["color_correction", "quality_enhancement", "export_optimization"],
            "estimated_time": "10-20 minutes",
            "complexity_level": "easy",
        }
    )
    for number, step in enumerate(steps, start=1):
        step["step_number"] = number
    return steps


def derive_quality_targets(complexity_level: str, platforms: List[str]) -> Dict[str, str]:
    targets = {
        "technical_quality": "good",
        "creative_quality": "appealing",
        "consistency_level": "good",
        "polish_level": "refined",
    }
    if complexity_level == "advanced":
        targets.update(
            technical_quality="professional",
            creative_quality="impressive",
            consistency_level="high",
            polish_level="polished",
        )
    elif complexity_level == "simple":
        targets.update(technical_quality="acceptable", creative_quality="functional", polish_level="draft")
    if "professional" in platforms or "business" in platforms:
        targets.update(technical_quality="professional", consistency_level="high")
    return targets


def build_optimization_suggestions(utilization: Dict[str, List[Dict[str, Any]]], focus: str) -> List[Dict[str, str]]:
    suggestions = []
    if focus in ("quality", "balanced"):
        suggestions.append(
            {
                "optimization_type": "quality",
                "suggestion": "Prioritize high-quality asset enhancement and professional finishing",
                "impact": "Significantly improved visual appeal and professional presentation",
                "implementation_effort": "moderate",
            }
        )
    if focus in ("speed", "balanced"):
        suggestions.append(
            {
                "optimization_type": "performance",
                "suggestion": "Batch process similar assets and use automated enhancement tools",
                "impact": "Reduced processing time while maintaining quality",
                "implementation_effort": "minimal",
            }
        )
    if focus in ("cost", "balanced"):
        suggestions.append(
            {
                "optimization_type": "cost",
                "suggestion": "Maximize utilization of existing assets before generating new content",
                "impact": "Lower production costs through efficient asset reuse",
                "implementation_effort": "minimal",
            }
        )
    if len(utilization["unused_assets"]) > len(utilization["primary_assets"]):
        suggestions.append(
            {
                "optimization_type": "complexity",
                "suggestion": "Reduce project scope to focus on most aligned assets",
                "impact": "Simplified production process with clearer creative direction",
                "implementation_effort": "minimal",
            }
        )
    return suggestions


PROFESSIONAL_STANDARD_OPTION = {
    "option_id": "professional_standard",
    "title": "Professional Standard Production",
    "description": "High-quality execution following industry best practices",
    "creative_approach": ["professional_standards", "optimal_quality", "efficient_processing"],
    "technical_requirements": ["quality_validation", "format_optimization"],
    "estimated_complexity": "medium",
    "suitability_score": 0.9,
    "trade_offs": {
        "benefits": ["reliable_output", "professional_quality", "predictable_results"],
        "considerations": ["standard_approach", "moderate_creativity"],
    },
}


def build_creative_option_catalog(query: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Turn the query's alternative interpretations into selectable options."""

    options = []
    alternatives = query.get("creative_reframing", {}).get("alternative_interpretations", [])
    for index, alternative in enumerate(alternatives, start=1):
        confidence = float(alternative.get("confidence") or 0.7)
        options.append(
            {
                "option_id": f"creative_{index}",
                "title": alternative.get("interpretation") or f"Creative Direction {index}",
                "description": alternative.get("rationale") or "Alternative creative approach",
                "creative_approach": ["enhanced_creativity"],
                "technical_requirements": ["standard_processing"],
                "estimated_complexity": "low" if confidence > 0.8 else "medium" if confidence > 0.6 else "high",
                "suitability_score": confidence,
                "trade_offs": {
                    "benefits": ["creative_enhancement", "professional_quality"],
                    "considerations": ["processing_time", "resource_requirements"],
                },
            }
        )
    options.append(dict(PROFESSIONAL_STANDARD_OPTION))
    return options


# -- synthesis metadata --------------------------------------------------------


def complexity_assessment(
    query: Dict[str, Any], asset_result: Dict[str, Any], gap_analysis: Dict[str, List[Dict[str, Any]]]
) -> str:
    summary = asset_result.get("summary", {})
    enhancement_ratio = _ratio(len(summary.get("enhancement_needed_assets", [])), asset_result.get("total_assets", 0))
    score = (
        len(summary.get("asset_type_breakdown", {}))
        + enhancement_ratio * 3
        + len(gap_analysis["identified_gaps"]) * 0.5
        + len(gap_analysis["contradictions"])
        + (1 if len(query.get("original_prompt", "").split()) > 20 else 0)
    )
    if score >= 8:
        return "highly_complex"
    if score >= 5:
        return "complex"
    if score >= 2:
        return "moderate"
    return "simple"


def build_synthesis_metadata(
    query: Dict[str, Any],
    asset_result: Dict[str, Any],
    utilization: Dict[str, List[Dict[str, Any]]],
    gap_analysis: Dict[str, List[Dict[str, Any]]],
    unified_intent: Dict[str, Any],
    models_used: List[str],
    started: float,
) -> Dict[str, Any]:
    scores = [_alignment(e) for e in asset_result.get("asset_analyses", []) if _succeeded(e)]
    alignment = round(sum(scores) / len(scores), 2) if scores else 0.5
    gaps = gap_analysis["identified_gaps"]
    critical = sum(1 for gap in gaps if gap["impact_level"] == "critical")
    high = sum(1 for gap in gaps if gap["impact_level"] == "high")
    essential_missing = sum(1 for item in gap_analysis["missing_elements"] if item["importance"] == "essential")
    completeness = clamp(1 - 0.3 * critical - 0.15 * high - 0.2 * essential_missing, 0.1, 1.0)

    primary = utilization["primary_assets"]
    issue_count = len(gaps) + len(gap_analysis["contradictions"])
    checks = [
        unified_intent["confidence"] > 0.7,
        bool(primary),
        critical == 0,
        issue_count < 5,
        any(item["processing_priority"] in ("critical", "high") for item in primary),
    ]

    confidence = 0.8 - 0.05 * issue_count
    if primary:
        confidence += 0.1
    if len(utilization["unused_assets"]) / (len(primary) + len(utilization["supporting_assets"]) + 1) < 0.3:
        confidence += 0.1

    return {
        "analysis_timestamp": utc_now_iso(),
        "processing_time_ms": int((time.monotonic() - started) * 1000),
        "synthesis_confidence": round(min(unified_intent["confidence"], alignment), 3),
        "query_asset_alignment_score": alignment,
        "completeness_score": round(completeness, 2),
        "complexity_assessment": complexity_assessment(query, asset_result, gap_analysis),
        "validation_checks_passed": sum(checks),
        "validation_checks_total": len(checks),
        "recommendations_confidence": round(clamp(confidence, 0.3, 1.0), 2),
        "ai_models_used": models_used,
        "synthesis_approach": "ai_enhanced_rule_based",
    }


# -- entry point ---------------------------------------------------------------


def combine_query_and_assets(
    query_result: Optional[Dict[str, Any]],
    asset_result: Optional[Dict[str, Any]],
    text_client=None,
    options: Optional[Dict[str, Any]] = None,
) -> Result:
    """Run Step 3 and return the combined project analysis."""

    options = options or {}
    if not query_result or not asset_result:
        return Result.fail("Both query analysis and asset analysis results are required")

    started = time.monotonic()
    try:
        intent_type = query_result.get("intent", {}).get("primary_output_type", "mixed")
        synthesis = synthesize_creative_direction(query_result, asset_result, intent_type, text_client, options)
        unified_intent = build_unified_intent(query_result, asset_result, synthesis)
        output_type = unified_intent["primary_output_type"]

        utilization = build_asset_utilization(query_result, asset_result, output_type)
        gap_analysis = build_gap_analysis(query_result, asset_result, utilization, output_type)
        conflict_resolutions = resolve_conflicts(query_result, asset_result, gap_analysis)
        constraints = build_unified_constraints(
            query_result, asset_result, output_type, len(gap_analysis["identified_gaps"])
        )
        platforms = constraints["platform_constraints"]["target_platforms"]

        models_used = [synthesis["model"]] if synthesis else []
        combined = {
            "project_id": generate_id("project"),
            "project_title": generate_project_title(query_result, output_type),
            "user_query": query_result.get("original_prompt", ""),
            "session_mode": "asset_driven",
            "unified_intent": unified_intent,
            "unified_constraints": constraints,
            "asset_utilization": utilization,
            "gap_analysis": gap_analysis,
            "conflict_resolutions": conflict_resolutions,
            "creative_synthesis": build_creative_synthesis(query_result, asset_result, utilization, unified_intent),
            "creative_options": build_creative_option_catalog(query_result),
            "production_recommendations": {
                "recommended_pipeline": build_recommended_pipeline(utilization, output_type),
                "quality_targets": derive_quality_targets(
                    constraints["production_constraints"]["complexity_level"], platforms
                ),
                "optimization_suggestions": build_optimization_suggestions(
                    utilization, options.get("optimization_focus", "balanced")
                ),
            },
            "synthesis_metadata": build_synthesis_metadata(
                query_result, asset_result, utilization, gap_analysis, unified_intent, models_used, started
            ),
        }
    except (KeyError, TypeError, ValueError) as exc:
        logger.exception("Combination analysis failed")
        return Result.fail(f"Combination analysis failed: {exc}")

    logger.info(
        "%s - combined %d assets (%d primary, %d conflicts)",
        combined["project_id"],
        asset_result.get("total_assets", 0),
        len(utilization["primary_assets"]),
        len(conflict_resolutions),
    )
    return Result.ok(combined, model_used=models_used[0] if models_used else None)
