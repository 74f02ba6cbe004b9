"""Typed shapes for pipeline inputs and the Step 1 query analysis payload."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

OUTPUT_TYPES = ("image", "video", "audio", "mixed")
MEDIA_TYPES = ("image", "video", "audio")


def first_value(value: Any) -> Any:
    """Collapse list-valued constraints (the model sometimes returns ranges) to the first entry."""

    if isinstance(value, list):
        return value[0] if value else None
    return value


def _to_float(value: Any) -> Optional[float]:
    value = first_value(value)
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class AssetInput(BaseModel):
    id: str
    url: str
    media_type: Literal["image", "video", "audio"]
    user_description: Optional[str] = None
    filename: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        if self.filename:
            return self.filename
        tail = self.url.rstrip("/").split("/")[-1].split("?")[0]
        return tail or "unknown_file"


class Intent(BaseModel):
    model_config = ConfigDict(extra="allow")

    primary_output_type: str = "mixed"
    confidence: float = 0.5
    secondary_types: List[str] = Field(default_factory=list)
    reasoning: str = ""

    @field_validator("primary_output_type", mode="before")
    @classmethod
    def _known_output_type(cls, value: Any) -> str:
        text = str(value or "").lower()
        if text == "mix":
            return "mixed"
        return text if text in OUTPUT_TYPES else "mixed"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, number))

    @field_validator("secondary_types", mode="before")
    @classmethod
    def _media_only(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(item).lower() for item in value if str(item).lower() in MEDIA_TYPES]


class Modifiers(BaseModel):
    model_config = ConfigDict(extra="allow")

    style: List[str] = Field(default_factory=list)
    mood: List[str] = Field(default_factory=list)
    theme: List[str] = Field(default_factory=list)
    time_period: List[str] = Field(default_factory=list)
    emotions: List[str] = Field(default_factory=list)
    aesthetic: List[str] = Field(default_factory=list)
    genre: List[str] = Field(default_factory=list)
    technical_specs: List[str] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def _as_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if isinstance(value, list):
            return [str(item) for item in value if item is not None and str(item).strip()]
        return [str(value)]


class Constraints(BaseModel):
    model_config = ConfigDict(extra="allow")

    image_count: Optional[int] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    image_format: Optional[str] = None
    duration_seconds: Optional[float] = None
    fps: Optional[float] = None
    video_format: Optional[str] = None
    video_quality: Optional[str] = None
    audio_length_seconds: Optional[float] = None
    audio_format: Optional[str] = None
    sample_rate: Optional[int] = None
    budget: Optional[float] = None
    timeline: Optional[str] = None
    platform: List[str] = Field(default_factory=list)
    target_audience: Optional[str] = None

    @field_validator("duration_seconds", "fps", "audio_length_seconds", "budget", mode="before")
    @classmethod
    def _numeric(cls, value: Any) -> Optional[float]:
        return _to_float(value)

    @field_validator("image_count", "sample_rate", mode="before")
    @classmethod
    def _integer(cls, value: Any) -> Optional[int]:
        number = _to_float(value)
        return int(round(number)) if number is not None else None

    @field_validator(
        "aspect_ratio",
        "resolution",
        "image_format",
        "video_format",
        "video_quality",
        "audio_format",
        "timeline",
        "target_audience",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        value = first_value(value)
        if value is None or str(value).strip() == "":
            return None
        return str(value)

    @field_validator("platform", mode="before")
    @classmethod
    def _platforms(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if item]


class Gaps(BaseModel):
    model_config = ConfigDict(extra="allow")

    missing_duration: bool = False
    missing_aspect_ratio: bool = False
    missing_style_direction: bool = False
    missing_target_audience: bool = False
    missing_platform_specs: bool = False
    missing_mood_tone: bool = False
    vague_requirements: bool = False
    needs_clarification: List[str] = Field(default_factory=list)

    @field_validator(
        "missing_duration",
        "missing_aspect_ratio",
        "missing_style_direction",
        "missing_target_audience",
        "missing_platform_specs",
        "missing_mood_tone",
        "vague_requirements",
        mode="before",
    )
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("needs_clarification", mode="before")
    @classmethod
    def _questions(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if item]


class AlternativeInterpretation(BaseModel):
    interpretation: str = ""
    rationale: str = ""
    confidence: float = 0.5


class PotentialDirection(BaseModel):
    direction: str = ""
    description: str = ""
    required_assets: List[str] = Field(default_factory=list)


class CreativeReframing(BaseModel):
    model_config = ConfigDict(extra="allow")

    alternative_interpretations: List[AlternativeInterpretation] = Field(default_factory=list)
    suggested_enhancements: List[str] = Field(default_factory=list)
    potential_directions: List[PotentialDirection] = Field(default_factory=list)


class QueryProcessingMetadata(BaseModel):
    analysis_timestamp: str = ""
    processing_time_ms: int = 0
    model_used: str = ""
    confidence_score: float = 0.0
    grammar_corrections_made: bool = False
    normalization_applied: bool = True


class QueryAnalysis(BaseModel):
    """Validated Step 1 output; missing model fields fall back to empty defaults."""

    model_config = ConfigDict(extra="ignore")

    original_prompt: str = ""
    normalized_prompt: str = ""
    intent: Intent = Field(default_factory=Intent)
    modifiers: Modifiers = Field(default_factory=Modifiers)
    constraints: Constraints = Field(default_factory=Constraints)
    gaps: Gaps = Field(default_factory=Gaps)
    creative_reframing: CreativeReframing = Field(default_factory=CreativeReframing)
    processing_metadata: QueryProcessingMetadata = Field(default_factory=QueryProcessingMetadata)

    @field_validator("intent", "modifiers", "constraints", "gaps", "creative_reframing", mode="before")
    @classmethod
    def _mapping_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}
