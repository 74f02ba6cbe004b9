"""Step 1: extract intent, modifiers, constraints and gaps from the user's request."""

from __future__ import annotations

import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jinja2 import Template
from pydantic import ValidationError

from .errors import ProviderError
from .models import CreativeReframing, QueryAnalysis
from .result import Result

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT_TEMPLATE = Template(
    """You are a professional creative project analyzer. Analyze the following user query and extract comprehensive information about their creative intent.

USER QUERY: "{{ query }}"

The user may mention media types (like "image" or "video") as descriptive content rather than as their output choice. Focus on the creative content, style and requirements.

Respond with a JSON object using exactly this structure:

{
  "normalized_prompt": "[cleaned and corrected version if needed]",
  "intent": {
    "primary_output_type": "[image|video|audio|mixed]",
    "confidence": [0.0-1.0],
    "secondary_types": ["[additional types if applicable]"],
    "reasoning": "[why you classified it this way]"
  },
  "modifiers": {
    "style": ["[visual/aesthetic styles mentioned or implied]"],
    "mood": ["[emotional tone, atmosphere]"],
    "theme": ["[subject themes, topics]"],
    "time_period": "[historical period or era if mentioned]",
    "emotions": ["[emotional qualities to convey]"],
    "aesthetic": ["[visual aesthetic preferences]"],
    "genre": ["[creative genres like cinematic, documentary]"],
    "technical_specs": ["[technical requirements mentioned]"]
  },
  "constraints": {
    "image_count": [number if specified],
    "aspect_ratio": "[16:9, 9:16, 1:1 if mentioned]",
    "resolution": "[4K, HD, 1920x1080 if specified]",
    "image_format": "[if specified]",
    "duration_seconds": [number if specified],
    "fps": [number if specified],
    "video_format": "[if specified]",
    "video_quality": "[if specified]",
    "audio_length_seconds": [number if specified],
    "audio_format": "[if specified]",
    "sample_rate": [number if specified],
    "budget": [number if mentioned],
    "timeline": "[deadline if mentioned]",
    "platform": ["[Instagram, YouTube, TikTok if mentioned]"],
    "target_audience": "[if specified or inferable]"
  },
  "gaps": {
    "missing_duration": [true if video/audio intent but no duration],
    "missing_aspect_ratio": [true if visual intent but no ratio],
    "missing_style_direction": [true if style is vague],
    "missing_target_audience": [true if not specified],
    "missing_platform_specs": [true if platform not specified],
    "missing_mood_tone": [true if emotional direction unclear],
    "vague_requirements": [true if the request is underspecified],
    "needs_clarification": ["[specific open questions]"]
  }{% if creative_reframing %},
  "creative_reframing": {
    "alternative_interpretations": [
      {"interpretation": "[alternative reading]", "rationale": "[why]", "confidence": [0.0-1.0]}
    ],
    "suggested_enhancements": ["[ways to expand the concept]"],
    "potential_directions": [
      {"direction": "[name]", "description": "[what it involves]", "required_assets": ["[assets needed]"]}
    ]
  }{% endif %}
}

ANALYSIS GUIDELINES:
1. Be specific and actionable.
2. Infer missing information from context clues and industry standards.
3. Only use confidence above 0.8 when very certain.
4. Extract both explicit and implicit requirements.
{%- if gap_detection_depth == "comprehensive" %}
5. List every gap that would block production, including subtle style, mood and cultural cues.
{%- elif gap_detection_depth == "basic" %}
5. Only flag gaps that are clearly missing.
{%- else %}
5. Pay attention to subtle style, mood and aesthetic cues when flagging gaps.
{%- endif %}

Respond ONLY with the JSON object, no additional text."""
)

JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")
_DUPLICATE_WORD_RE = re.compile(r"\b(\w+)(\s+\1\b)+", re.IGNORECASE)
_LONE_I_RE = re.compile(r"\bi\b")


def normalize_query(query: str) -> str:
    normalized = re.sub(r"\s+", " ", query.strip())
    normalized = _LONE_I_RE.sub("I", normalized)
    normalized = _DUPLICATE_WORD_RE.sub(r"\1", normalized)
    if len(normalized) > 3 and not re.search(r"[.!?]$", normalized):
        normalized += "."
    return normalized


def extract_intent_from_query(query: str) -> str:
    lowered = query.lower()
    if any(word in lowered for word in ("video", "trailer", "movie")):
        return "video"
    if any(word in lowered for word in ("image", "picture", "photo")):
        return "image"
    if any(word in lowered for word in ("audio", "sound", "music")):
        return "audio"
    return "mixed"


def build_analysis_prompt(query: str, options: Dict[str, Any]) -> str:
    return ANALYSIS_PROMPT_TEMPLATE.render(
        query=query.replace('"', "'"),
        creative_reframing=options.get("enable_creative_reframing", True),
        gap_detection_depth=options.get("gap_detection_depth", "detailed"),
    )


def parse_analysis_response(text: str) -> Dict[str, Any]:
    match = JSON_BLOCK_RE.search(text or "")
    if not match:
        raise ValueError("No valid JSON found in LLM response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("LLM response JSON is not an object")
    return data


def analyze_user_query(query: str, client, options: Optional[Dict[str, Any]] = None) -> Result:
    """Run Step 1 against the text model chain and return a validated analysis.

    Each model in the resolved chain is tried in order; the first reply that
    parses and validates wins. Provider and parse failures are collected and
    reported together when the whole chain is exhausted.
    """

    options = options or {}
    if not query or not query.strip():
        return Result.fail("Query must be a non-empty string")

    start = time.monotonic()
    normalized = normalize_query(query)
    prompt = build_analysis_prompt(normalized, options)
    messages = [
        {"role": "system", "content": "You analyze creative briefs and answer with strict JSON."},
        {"role": "user", "content": prompt},
    ]

    failures: List[str] = []
    for model in client.resolve_chain(options.get("model_preference", "auto")):
        try:
            reply = client.chat(messages, model=model)
            parsed = parse_analysis_response(reply)
            analysis = QueryAnalysis.model_validate(parsed)
        except ProviderError as exc:
            logger.warning("Query analysis model %s failed: %s", model, exc)
            failures.append(f"{model}: {exc}")
            continue
        except (ValueError, TypeError, OverflowError, ValidationError) as exc:
            logger.warning("Query analysis model %s returned unusable output: %s", model, exc)
            failures.append(f"{model}: {exc}")
            continue

        if not options.get("enable_creative_reframing", True):
            analysis.creative_reframing = CreativeReframing()
        analysis.original_prompt = query
        analysis.normalized_prompt = normalized
        metadata = analysis.processing_metadata
        metadata.analysis_timestamp = datetime.now(timezone.utc).isoformat()
        metadata.processing_time_ms = int((time.monotonic() - start) * 1000)
        metadata.model_used = model
        metadata.confidence_score = analysis.intent.confidence
        metadata.grammar_corrections_made = normalized != query
        metadata.normalization_applied = True

        logger.info(
            "Query analysis completed with %s in %sms (intent=%s)",
            model,
            metadata.processing_time_ms,
            analysis.intent.primary_output_type,
        )
        return Result.ok(analysis.model_dump(mode="json"), model_used=model)

    return Result.fail("All models failed: " + "; ".join(failures) if failures else "No text models configured")


def detect_asset_requirements(analysis: Dict[str, Any]) -> Dict[str, Any]:
    intent = analysis["intent"]["primary_output_type"]
    gaps = analysis.get("gaps", {})
    modifiers = analysis.get("modifiers", {})
    specs = [spec.lower() for spec in modifiers.get("technical_specs", [])]
    genres = [genre.lower() for genre in modifiers.get("genre", [])]

    needs_reference_images = intent in ("image", "video") and (
        bool(gaps.get("missing_style_direction")) or not modifiers.get("style")
    )
    needs_source_video = intent == "video" and (
        any("edit" in spec for spec in specs) or any("remix" in genre for genre in genres)
    )
    needs_audio_input = intent in ("audio", "video") and (
        any("voice" in spec for spec in specs) or bool(gaps.get("missing_mood_tone"))
    )

    recommended: List[str] = []
    if needs_reference_images:
        recommended.append("reference_images")
    if needs_source_video:
        recommended.append("source_video")
    if needs_audio_input:
        recommended.append("audio_samples")

    open_gaps = ", ".join(key for key, value in gaps.items() if value is True)
    return {
        "needs_reference_images": needs_reference_images,
        "needs_source_video": needs_source_video,
        "needs_audio_input": needs_audio_input,
        "recommended_asset_types": recommended,
        "rationale": f"Based on intent ({intent}) and identified gaps: {open_gaps}",
    }


_PLATFORM_DEFAULTS = {
    "tiktok": (30, "9:16", "1080x1920"),
    "instagram": (30, "9:16", "1080x1920"),
    "instagram reels": (30, "9:16", "1080x1920"),
    "youtube shorts": (30, "9:16", "1080x1920"),
    "youtube": (60, "16:9", "1920x1080"),
    "instagram feed": (None, "1:1", "1080x1080"),
}


def generate_default_constraints(analysis: Dict[str, Any]) -> Dict[str, Any]:
    intent = analysis["intent"]["primary_output_type"]
    platforms = analysis.get("constraints", {}).get("platform") or []
    platform = platforms[0].lower() if platforms else None

    duration, aspect_ratio, resolution = _PLATFORM_DEFAULTS.get(platform or "", (None, None, None))
    if intent == "video" and not duration:
        duration = 30
    if not aspect_ratio:
        if intent == "video":
            aspect_ratio = "16:9"
        elif intent == "image":
            aspect_ratio = "1:1"

    prefix = f"platform ({platform}) and " if platform else ""
    return {
        "suggested_duration": duration,
        "suggested_aspect_ratio": aspect_ratio,
        "suggested_resolution": resolution,
        "rationale": f"Defaults based on {prefix}intent ({intent})",
    }
