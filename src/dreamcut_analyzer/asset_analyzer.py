"""Step 2: bounded parallel analysis of user supplied media assets.

Every asset is analyzed on a worker from a fixed-size thread pool. A failing
or timed-out asset is replaced by a degraded entry so that the batch always
returns one entry per input asset, in input order.
"""

from __future__ import annotations

import logging
import math
import re
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, Sequence

from jinja2 import Template

from .errors import ProviderError, ProviderUnavailable
from .models import AssetInput
from .monitoring import record_asset_analysis
from .result import Result
from .utils import clamp, contains_any, generate_id, mean, utc_now_iso

logger = logging.getLogger(__name__)

MEDIA_PROMPT_TEMPLATE = Template(
    """Analyze this {{ media_type }} in detail for a creative production team.
Describe the subjects, objects, setting, composition, colors, lighting, style and mood.
{%- if media_type == "video" %}
Break the footage into scenes, describe camera motion and pacing, and note audio if present.
{%- endif %}
Comment on technical quality (sharpness, noise, exposure, resolution).
{%- if user_description %}
The user describes it as: "{{ user_description }}".
{%- endif %}
The project request is: "{{ query }}". Explain how this {{ media_type }} could serve that request."""
)

IMAGE_QUALITY_POSITIVE = ("high quality", "clear", "sharp", "detailed", "professional")
IMAGE_QUALITY_NEGATIVE = ("blurry", "low quality", "pixelated", "grainy", "poor")
VIDEO_QUALITY_POSITIVE = ("high definition", "clear", "smooth", "professional", "well-lit")
VIDEO_QUALITY_NEGATIVE = ("low quality", "shaky", "dark", "blurry", "poor audio")

MOOD_WORDS = {
    "happy": ("happy", "joyful", "cheerful", "bright", "positive"),
    "sad": ("sad", "melancholy", "dark", "gloomy", "depressing"),
    "calm": ("calm", "peaceful", "serene", "tranquil", "relaxed"),
    "energetic": ("energetic", "dynamic", "vibrant", "lively", "exciting"),
}
STYLE_WORDS = ("modern", "vintage", "minimalist", "artistic", "professional", "casual", "formal")
OBJECT_WORDS = (
    "person",
    "people",
    "man",
    "woman",
    "child",
    "car",
    "building",
    "tree",
    "sky",
    "water",
    "animal",
    "dog",
    "cat",
    "house",
    "road",
    "sign",
    "text",
    "food",
    "clothing",
    "furniture",
    "computer",
    "phone",
)
COLOR_WORDS = ("red", "blue", "green", "yellow", "black", "white", "orange", "purple", "pink", "neon")

USAGE_RECOMMENDATIONS = {
    "primary_content": ["Use as main visual element", "Consider for hero placement"],
    "supporting_element": ["Use as supporting visual", "Good for background or secondary placement"],
    "reference_material": ["Use for style reference", "Consider for mood board"],
}

DIRECT_USE_FORMATS = {"unknown", "jpg", "jpeg", "png", "webp", "mp4", "mov", "webm", "mp3", "wav", "m4a", "ogg"}


# -- text heuristics -------------------------------------------------------


def _keyword_score(text: str, positive: Sequence[str], negative: Sequence[str]) -> int:
    lowered = text.lower()
    score = 5
    score += sum(1 for word in positive if word in lowered)
    score -= sum(1 for word in negative if word in lowered)
    return int(clamp(score, 1, 10))


def assess_image_quality(text: str) -> int:
    return _keyword_score(text, IMAGE_QUALITY_POSITIVE, IMAGE_QUALITY_NEGATIVE)


def assess_video_quality(text: str) -> int:
    return _keyword_score(text, VIDEO_QUALITY_POSITIVE, VIDEO_QUALITY_NEGATIVE)


def assess_audio_quality(transcription: str) -> int:
    length = len(transcription or "")
    if length < 10:
        return 2
    if length > 1000:
        return 8
    if length > 500:
        return 7
    if length > 100:
        return 6
    return 5


def extract_mood(text: str) -> str:
    for mood, words in MOOD_WORDS.items():
        if contains_any(text, words):
            return mood
    return "neutral"


def extract_style(text: str) -> str:
    lowered = text.lower()
    return next((style for style in STYLE_WORDS if style in lowered), "unknown")


def extract_objects(text: str) -> List[str]:
    lowered = text.lower()
    return [word for word in OBJECT_WORDS if word in lowered][:10]


def extract_scenes(text: str) -> List[str]:
    sentences = [part.strip() for part in re.split(r"[.!?]+", text)]
    return [sentence for sentence in sentences if len(sentence) > 20][:5]


def extract_colors(text: str) -> List[str]:
    lowered = text.lower()
    return [color for color in COLOR_WORDS if color in lowered]


def describe_quality(text: str) -> str:
    lowered = text.lower()
    if "high quality" in lowered:
        return "High quality content"
    if "low quality" in lowered:
        return "Low quality content"
    return "Standard quality content"


def assess_creative_potential(query: str) -> str:
    if contains_any(query, ("creative", "artistic")):
        return "High creative potential for artistic projects"
    return "Good potential for standard content creation"


def analyze_query_alignment(detailed_text: str, query: str, user_description: Optional[str]) -> Dict[str, Any]:
    content = f"{detailed_text} {user_description or ''}".lower()
    query_words = [word for word in query.lower().split() if len(word) > 3]
    matches = sum(1 for word in query_words if word in content)
    score = round(min(1.0, matches / max(1, len(query_words))), 3)

    if score > 0.7:
        role = "primary_content"
    elif score > 0.4:
        role = "supporting_element"
    elif score > 0.2:
        role = "reference_material"
    else:
        role = "unclear"

    return {
        "supports_query_intent": score > 0.3,
        "alignment_score": score,
        "role_in_project": role,
        "usage_recommendations": list(
            USAGE_RECOMMENDATIONS.get(role, ["Requires further analysis", "Consider alternative usage"])
        ),
        "conflicts_or_issues": [],
        "enhancement_suggestions": [],
    }


def _enhancement_suggestions(content: Dict[str, Any]) -> List[str]:
    suggestions = []
    if "low" in content.get("quality_assessment", "").lower():
        suggestions.append("Quality enhancement recommended")
    if content.get("mood_assessment") == "sad":
        suggestions.append("Consider brightness adjustment")
    if content.get("style_analysis") == "unknown":
        suggestions.append("Style enhancement may be needed")
    return suggestions


def determine_processing_needs(
    asset: AssetInput,
    content: Dict[str, Any],
    alignment: Dict[str, Any],
    metadata: Dict[str, Any],
    options: Dict[str, Any],
) -> Dict[str, Any]:
    quality = metadata.get("quality_score", 5)
    score = alignment["alignment_score"]
    tools = ["standard_enhancement"]
    needs: Dict[str, Any] = {
        "requires_upscaling": quality < 6,
        "requires_enhancement": "low" in content.get("quality_assessment", "").lower(),
        "requires_background_removal": False,
        "requires_style_transfer": score < 0.5,
        "requires_format_conversion": metadata.get("format", "unknown") not in DIRECT_USE_FORMATS,
        "requires_trimming": False,
        "requires_noise_reduction": False,
        "requires_voice_cloning": False,
        "priority_level": "high" if score > 0.7 else "medium" if score > 0.4 else "low",
        "estimated_processing_time": "2-5 minutes",
        "recommended_tools": tools,
    }

    if asset.media_type == "video":
        if metadata.get("has_audio") is False:
            needs["requires_voice_cloning"] = True
            tools.append("audio_generation")
        if quality < 5:
            needs["requires_upscaling"] = True
            tools.append("video_upscaling")
        max_duration = options.get("max_duration_seconds")
        duration = metadata.get("duration_seconds")
        if max_duration and duration and duration > max_duration:
            needs["requires_trimming"] = True
            tools.append("video_trimming")
        needs["estimated_processing_time"] = "5-10 minutes"
    elif asset.media_type == "audio":
        if quality < 5:
            needs["requires_noise_reduction"] = True
            tools.append("audio_cleanup")
        if len(content.get("transcription", "")) < 50:
            needs["requires_enhancement"] = True
            tools.append("content_expansion")
        needs["estimated_processing_time"] = "3-6 minutes"
    return needs


def calculate_confidence(fallback_used: bool, detailed_text: str, media_type: str) -> float:
    confidence = 0.8
    if fallback_used:
        confidence -= 0.2
    threshold = 100 if media_type == "audio" else 500
    if len(detailed_text) > threshold:
        confidence += 0.1
    return round(clamp(confidence, 0.1, 1.0), 2)


def _extension(url: str) -> str:
    tail = url.split("?")[0].rstrip("/").split("/")[-1]
    if "." not in tail:
        return "unknown"
    return tail.rsplit(".", 1)[-1].lower() or "unknown"


def _number(value: Any) -> Optional[float]:
    """Positive finite number from free-form metadata, else None."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _dimensions(metadata: Dict[str, Any]) -> Optional[Dict[str, int]]:
    dims = metadata.get("dimensions")
    source = dims if isinstance(dims, dict) else metadata
    width, height = _number(source.get("width")), _number(source.get("height"))
    if width and height:
        return {"width": int(width), "height": int(height)}
    return None


def _duration(metadata: Dict[str, Any]) -> Optional[float]:
    for key in ("duration_seconds", "duration"):
        value = _number(metadata.get(key))
        if value:
            return float(value)
    return None


# -- per asset ---------------------------------------------------------------


def _run_model_chain(asset: AssetInput, query: str, client, enable_fallbacks: bool) -> tuple[str, List[str], bool]:
    models = client.models_for(asset.media_type)
    if not enable_fallbacks:
        models = models[:1]
    prompt = MEDIA_PROMPT_TEMPLATE.render(
        media_type=asset.media_type,
        query=query,
        user_description=asset.user_description,
    )

    errors: List[ProviderError] = []
    for index, model in enumerate(models):
        try:
            if asset.media_type == "audio":
                text = client.transcribe(asset.url, model=model)
            else:
                text = client.describe(asset.url, asset.media_type, prompt, model=model)
        except ProviderError as exc:
            logger.warning("Model %s failed for asset %s: %s", model, asset.id, exc)
            errors.append(exc)
            continue
        return text, [model], index > 0

    if errors and all(isinstance(exc, ProviderUnavailable) for exc in errors):
        raise ProviderUnavailable("vision", f"All {asset.media_type} analysis models unreachable: {errors[-1]}")
    detail = "; ".join(str(exc) for exc in errors) or "no models configured"
    raise ProviderError("vision", f"All {asset.media_type} analysis models failed: {detail}")


def analyze_single_asset(asset: AssetInput, query: str, client, options: Dict[str, Any]) -> Dict[str, Any]:
    """Analyze one asset; raises ``ProviderError`` when no model can describe it."""

    started = time.monotonic()
    text, models_used, fallback_used = _run_model_chain(
        asset, query, client, options.get("enable_fallbacks", True)
    )
    user_meta = asset.metadata or {}

    metadata: Dict[str, Any] = {
        "format": _extension(asset.url),
        "file_size": _number(user_meta.get("file_size")) or _number(user_meta.get("size")),
        "dimensions": _dimensions(user_meta),
        "duration_seconds": _duration(user_meta),
    }

    if asset.media_type == "audio":
        word_count = len(text.split())
        metadata["quality_score"] = assess_audio_quality(text)
        metadata["duration_seconds"] = metadata["duration_seconds"] or round(max(10.0, word_count / 150 * 60), 1)
        metadata["sample_rate"] = user_meta.get("sample_rate")
        content = {
            "primary_description": text[:500] if text.strip() else "No speech detected",
            "detailed_analysis": text,
            "transcription": text,
            "objects_detected": [],
            "scenes_identified": [],
            "mood_assessment": extract_mood(text),
            "style_analysis": "spoken" if word_count > 0 else "non-verbal",
            "quality_assessment": describe_quality(text),
            "creative_potential": assess_creative_potential(query),
        }
    else:
        scorer = assess_video_quality if asset.media_type == "video" else assess_image_quality
        metadata["quality_score"] = scorer(text)
        metadata["color_analysis"] = {"dominant_colors": extract_colors(text)}
        if asset.media_type == "video":
            metadata["has_audio"] = user_meta.get("has_audio")
            metadata["fps"] = user_meta.get("fps")
        content = {
            "primary_description": text[:500],
            "detailed_analysis": text,
            "objects_detected": extract_objects(text),
            "scenes_identified": extract_scenes(text),
            "mood_assessment": extract_mood(text),
            "style_analysis": extract_style(text),
            "quality_assessment": describe_quality(text),
            "creative_potential": assess_creative_potential(query),
        }

    alignment = analyze_query_alignment(text, query, asset.user_description)
    alignment["enhancement_suggestions"] = _enhancement_suggestions(content)
    needs = determine_processing_needs(asset, content, alignment, metadata, options)

    return {
        "asset_id": asset.id,
        "asset_url": asset.url,
        "asset_type": asset.media_type,
        "user_description": asset.user_description,
        "metadata": metadata,
        "content_analysis": content,
        "alignment_with_query": alignment,
        "processing_needs": needs,
        "processing_info": {
            "models_used": models_used,
            "processing_time_ms": int((time.monotonic() - started) * 1000),
            "analysis_timestamp": utc_now_iso(),
            "success": True,
            "confidence_score": calculate_confidence(fallback_used, text, asset.media_type),
            "fallback_used": fallback_used,
            "error_messages": [],
        },
    }


def create_error_asset_result(asset: AssetInput, message: str, processing_time_ms: int = 0) -> Dict[str, Any]:
    return {
        "asset_id": asset.id,
        "asset_url": asset.url,
        "asset_type": asset.media_type,
        "user_description": asset.user_description,
        "metadata": {"quality_score": 0, "format": _extension(asset.url)},
        "content_analysis": {
            "primary_description": "Analysis failed",
            "detailed_analysis": f"Failed to analyze asset: {message}",
            "objects_detected": [],
            "scenes_identified": [],
        },
        "alignment_with_query": {
            "supports_query_intent": False,
            "alignment_score": 0,
            "role_in_project": "unclear",
            "usage_recommendations": ["Analysis failed - manual review required"],
            "conflicts_or_issues": [message],
            "enhancement_suggestions": [],
        },
        "processing_needs": {
            "requires_upscaling": False,
            "requires_enhancement": False,
            "requires_background_removal": False,
            "requires_style_transfer": False,
            "requires_format_conversion": False,
            "requires_trimming": False,
            "requires_noise_reduction": False,
            "requires_voice_cloning": False,
            "priority_level": "low",
            "recommended_tools": [],
        },
        "processing_info": {
            "models_used": [],
            "processing_time_ms": processing_time_ms,
            "analysis_timestamp": utc_now_iso(),
            "success": False,
            "confidence_score": 0,
            "fallback_used": False,
            "error_messages": [message],
        },
    }


# -- batch summary -------------------------------------------------------------


def _alignment_insights(analyses: List[Dict[str, Any]]) -> List[str]:
    insights = []
    scores = [a["alignment_with_query"]["alignment_score"] for a in analyses]
    high = sum(1 for score in scores if score > 0.7)
    low = sum(1 for score in scores if score < 0.3)
    if high:
        insights.append(f"{high} asset(s) strongly align with your query intent")
    if low:
        insights.append(f"{low} asset(s) may need role clarification or alternative usage")

    primary = sum(1 for a in analyses if a["alignment_with_query"]["role_in_project"] == "primary_content")
    if primary == 0:
        insights.append("No assets identified as primary content - consider providing more aligned reference material")
    elif primary > 3:
        insights.append("Multiple primary content assets identified - consider prioritizing the most relevant ones")
    return insights


def _technical_recommendations(analyses: List[Dict[str, Any]]) -> List[str]:
    recommendations = []
    low_quality = sum(1 for a in analyses if a["metadata"].get("quality_score", 5) < 6)
    if low_quality:
        recommendations.append(f"{low_quality} asset(s) would benefit from quality enhancement")
    upscaling = sum(1 for a in analyses if a["processing_needs"]["requires_upscaling"])
    if upscaling:
        recommendations.append(f"{upscaling} asset(s) require upscaling for optimal results")
    conversion = sum(1 for a in analyses if a["processing_needs"]["requires_format_conversion"])
    if conversion:
        recommendations.append(f"{conversion} asset(s) may need format conversion for compatibility")
    style = sum(1 for a in analyses if a["processing_needs"]["requires_style_transfer"])
    if style:
        recommendations.append(
            f"{style} asset(s) would benefit from style adaptation to match project requirements"
        )
    if not recommendations:
        recommendations.append("All assets appear technically suitable for direct use")
    return recommendations


def generate_analysis_summary(analyses: List[Dict[str, Any]]) -> Dict[str, Any]:
    successful = [a for a in analyses if a["processing_info"]["success"]]

    breakdown: Dict[str, int] = {}
    for entry in successful:
        breakdown[entry["asset_type"]] = breakdown.get(entry["asset_type"], 0) + 1

    def ids_where(predicate: Callable[[Dict[str, Any]], bool]) -> List[str]:
        return [a["asset_id"] for a in successful if predicate(a)]

    return {
        "asset_type_breakdown": breakdown,
        "overall_quality_score": round(
            mean((a["metadata"].get("quality_score", 5) for a in successful), default=5), 1
        ),
        "primary_content_assets": ids_where(
            lambda a: a["alignment_with_query"]["role_in_project"] == "primary_content"
        ),
        "reference_material_assets": ids_where(
            lambda a: a["alignment_with_query"]["role_in_project"] == "reference_material"
        ),
        "enhancement_needed_assets": ids_where(
            lambda a: a["processing_needs"]["requires_enhancement"] or a["processing_needs"]["requires_upscaling"]
        ),
        "high_priority_processing": ids_where(lambda a: a["processing_needs"]["priority_level"] == "high"),
        "alignment_insights": _alignment_insights(successful),
        "technical_recommendations": _technical_recommendations(successful),
    }


def _empty_batch(analysis_id: str) -> Dict[str, Any]:
    return {
        "analysis_id": analysis_id,
        "total_assets": 0,
        "successful_analyses": 0,
        "failed_analyses": 0,
        "total_processing_time_ms": 0,
        "asset_analyses": [],
        "summary": {
            "asset_type_breakdown": {},
            "overall_quality_score": 0,
            "primary_content_assets": [],
            "reference_material_assets": [],
            "enhancement_needed_assets": [],
            "high_priority_processing": [],
            "alignment_insights": [],
            "technical_recommendations": [],
        },
        "processing_metadata": {
            "analysis_timestamp": utc_now_iso(),
            "parallel_processing_used": False,
            "models_available": {},
            "models_used": [],
            "performance_metrics": {
                "avg_processing_time_per_asset": 0,
                "fastest_analysis_ms": 0,
                "slowest_analysis_ms": 0,
                "success_rate": 0,
            },
        },
    }


def analyze_assets(
    assets: Sequence[AssetInput],
    query: str,
    client,
    *,
    max_concurrent: int = 5,
    timeout_per_asset: float = 120.0,
    options: Optional[Dict[str, Any]] = None,
    on_asset_start: Optional[Callable[[AssetInput], None]] = None,
) -> Result:
    options = options or {}
    analysis_id = generate_id("step2")
    started = time.monotonic()

    if not assets:
        return Result.ok(_empty_batch(analysis_id))

    parallel = options.get("parallel_processing", True) and len(assets) > 1
    workers = max(1, min(max_concurrent, len(assets))) if parallel else 1
    logger.info("%s - analyzing %d assets with %d workers", analysis_id, len(assets), workers)

    def _task(asset: AssetInput) -> Dict[str, Any]:
        if on_asset_start is not None:
            try:
                on_asset_start(asset)
            except Exception:  # noqa: BLE001
                logger.exception("Asset start callback failed for %s", asset.id)
        return analyze_single_asset(asset, query, client, options)

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="asset-analyzer")
    try:
        futures = [executor.submit(_task, asset) for asset in assets]
        # one asset timeout per wave of workers
        deadline = timeout_per_asset * math.ceil(len(assets) / workers)
        wait(futures, timeout=deadline)

        analyses: List[Dict[str, Any]] = []
        unavailable = 0
        for asset, future in zip(assets, futures):
            if not future.done():
                future.cancel()
                message = f"Analysis timed out after {timeout_per_asset:g}s"
                analyses.append(create_error_asset_result(asset, message, int(deadline * 1000)))
                record_asset_analysis(asset.media_type, "timeout")
                continue
            exc = future.exception()
            if exc is None:
                analyses.append(future.result())
                record_asset_analysis(asset.media_type, "success")
                continue
            if isinstance(exc, ProviderUnavailable):
                unavailable += 1
            logger.warning("Asset %s analysis failed: %s", asset.id, exc)
            analyses.append(create_error_asset_result(asset, str(exc) or exc.__class__.__name__))
            record_asset_analysis(asset.media_type, "failed")
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    if unavailable == len(assets):
        return Result.fail(f"Asset analysis provider unavailable for all {len(assets)} assets")

    successful = sum(1 for a in analyses if a["processing_info"]["success"])
    times = [a["processing_info"]["processing_time_ms"] for a in analyses]
    models_used: List[str] = []
    for entry in analyses:
        for model in entry["processing_info"]["models_used"]:
            if model not in models_used:
                models_used.append(model)
    total_ms = int((time.monotonic() - started) * 1000)

    result = {
        "analysis_id": analysis_id,
        "total_assets": len(assets),
        "successful_analyses": successful,
        "failed_analyses": len(assets) - successful,
        "total_processing_time_ms": total_ms,
        "asset_analyses": analyses,
        "summary": generate_analysis_summary(analyses),
        "processing_metadata": {
            "analysis_timestamp": utc_now_iso(),
            "parallel_processing_used": parallel,
            "models_available": {
                model: True for media in ("image", "video", "audio") for model in client.models_for(media)
            },
            "models_used": models_used,
            "performance_metrics": {
                "avg_processing_time_per_asset": round(mean(times), 1),
                "fastest_analysis_ms": min(times),
                "slowest_analysis_ms": max(times),
                "success_rate": round(successful / len(assets), 3),
            },
        },
    }
    logger.info("%s - completed %d/%d assets in %sms", analysis_id, successful, len(assets), total_ms)
    return Result.ok(result)
