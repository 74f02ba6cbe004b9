"""Request and response models for the analyzer API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

ModelPreference = Literal["llama31_405b", "llama31_70b", "qwen25_72b", "gemma2_27b", "mistral_7b", "auto"]
MediaType = Literal["image", "video", "audio"]
Depth = Literal["basic", "detailed", "comprehensive"]


class Step1Options(BaseModel):
    model_preference: ModelPreference = "auto"
    enable_creative_reframing: bool = True
    gap_detection_depth: Depth = "detailed"


class Step2Options(BaseModel):
    parallel_processing: bool = True
    enable_fallbacks: bool = True
    quality_threshold: float = Field(5, ge=0, le=10)
    max_concurrent: Optional[int] = Field(None, ge=1, le=20)
    timeout_per_asset: Optional[float] = Field(None, gt=0)


class Step3Options(BaseModel):
    enable_ai_synthesis: bool = True
    synthesis_model: Literal["llama31_405b", "llama31_70b", "qwen25_72b", "auto"] = "auto"
    include_creative_suggestions: bool = True
    gap_analysis_depth: Depth = "detailed"
    optimization_focus: Literal["quality", "speed", "cost", "balanced"] = "balanced"


class Step4Options(BaseModel):
    include_alternative_approaches: bool = True
    include_creative_enhancements: bool = True
    include_detailed_pipeline: bool = True
    include_processing_insights: bool = True
    optimization_focus: Literal["quality", "speed", "cost", "balanced"] = "balanced"
    detail_level: Literal["summary", "minimal", "standard", "comprehensive"] = "standard"


class RealtimeOptions(BaseModel):
    enable_streaming: bool = True


class AnalysisOptions(BaseModel):
    step1: Step1Options = Field(default_factory=Step1Options)
    step2: Step2Options = Field(default_factory=Step2Options)
    step3: Step3Options = Field(default_factory=Step3Options)
    step4: Step4Options = Field(default_factory=Step4Options)

    def for_pipeline(self) -> Dict[str, Any]:
        options = self.model_dump()
        options["step2"] = {k: v for k, v in options["step2"].items() if v is not None}
        return options


class RealtimeAnalysisOptions(AnalysisOptions):
    step4: Step4Options = Field(default_factory=lambda: Step4Options(detail_level="comprehensive"))
    realtime: RealtimeOptions = Field(default_factory=RealtimeOptions)


class LegacyAsset(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    url: HttpUrl
    media_type: MediaType = Field(..., alias="mediaType")
    metadata: Optional[Dict[str, Any]] = None


class UnifiedAsset(LegacyAsset):
    filename: Optional[str] = None
    user_description: Optional[str] = Field(None, alias="userDescription")


class RealtimeAsset(LegacyAsset):
    description: Optional[str] = None


class Preferences(BaseModel):
    aspect_ratio: Optional[str] = None
    platform_target: Optional[str] = None


class LegacyAnalyzerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1)
    assets: List[LegacyAsset] = Field(default_factory=list)
    intent: Optional[Literal["image", "video", "audio", "mix"]] = None
    output_images: Optional[int] = Field(None, alias="outputImages", ge=1, le=20)
    output_video_seconds: Optional[int] = Field(None, alias="outputVideoSeconds", ge=5, le=180)
    preferences: Preferences = Field(default_factory=Preferences)
    budget_credits: Optional[float] = Field(None, ge=0)


class UnifiedAnalyzerRequest(BaseModel):
    query: str = Field(..., min_length=1)
    assets: List[UnifiedAsset] = Field(default_factory=list)
    options: AnalysisOptions = Field(default_factory=AnalysisOptions)


class RealtimeAnalyzerRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=5000)
    assets: List[RealtimeAsset] = Field(default_factory=list, max_length=20)
    user_id: str = Field(..., min_length=1)
    query_id: Optional[str] = None
    options: RealtimeAnalysisOptions = Field(default_factory=RealtimeAnalysisOptions)


class StepAsset(BaseModel):
    id: Optional[str] = None
    url: HttpUrl
    media_type: MediaType
    user_description: Optional[str] = None
    filename: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class Step1AnalyzerRequest(BaseModel):
    query: str = Field(..., min_length=1)
    options: Step1Options = Field(default_factory=Step1Options)
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class Step2AnalyzerRequest(BaseModel):
    user_query: str = Field(..., min_length=1)
    assets: List[StepAsset] = Field(..., min_length=1, max_length=20)
    options: Step2Options = Field(default_factory=Step2Options)
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class Step3CombinationRequest(BaseModel):
    query_analysis: Dict[str, Any]
    asset_analysis: Dict[str, Any]
    options: Step3Options = Field(default_factory=Step3Options)
    project_name: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class ProcessingTimes(BaseModel):
    step1_ms: int = Field(0, ge=0)
    step2_ms: int = Field(0, ge=0)
    step3_ms: int = Field(0, ge=0)


class Step4SummarizerRequest(BaseModel):
    query_analysis: Dict[str, Any]
    asset_analysis: Dict[str, Any]
    unified_understanding: Dict[str, Any]
    processing_times: ProcessingTimes = Field(default_factory=ProcessingTimes)
    options: Step4Options = Field(default_factory=Step4Options)
    export_format: Literal["json", "formatted"] = "json"
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class RealtimeSubscription(BaseModel):
    channel: str
    events: List[str]
    database_table: str
    status_field: str = "status"


class RealtimeAnalyzerResponse(BaseModel):
    success: bool = True
    message: str
    query_id: str
    request_id: str
    channel: str
    realtime_subscription: RealtimeSubscription
    expected_flow: List[Dict[str, str]]
    storyboard_preview: Dict[str, Any]


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded", "down"] = "ok"
    timestamp: datetime
    dependencies: dict[str, str] = Field(default_factory=dict)
