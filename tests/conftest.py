"""Shared pytest fixtures for the analyzer service tests."""

from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, List, Optional

import pytest

os.environ.setdefault("DREAMCUT_DISABLE_METRICS", "true")

from dreamcut_analyzer.config import (  # noqa: E402
    APIAuthSettings,
    CeleryQueueSettings,
    LoggingSettings,
    PipelineSettings,
    RealtimeSettings,
    Settings,
    TextModelSettings,
    VisionModelSettings,
)
from dreamcut_analyzer.errors import ProviderError  # noqa: E402
from dreamcut_analyzer.models import AssetInput  # noqa: E402

CYBERPUNK_QUERY = "Create a cinematic 30s cyberpunk trailer"

QUERY_ANALYSIS_REPLY: Dict[str, Any] = {
    "normalized_prompt": "Create a cinematic 30s cyberpunk trailer.",
    "intent": {
        "primary_output_type": "video",
        "confidence": 0.92,
        "secondary_types": [],
        "reasoning": "Trailer implies video output",
    },
    "modifiers": {
        "style": ["cinematic", "cyberpunk"],
        "mood": ["dramatic"],
        "theme": ["futuristic city"],
        "time_period": "future",
        "emotions": ["tension"],
        "aesthetic": ["neon"],
        "genre": ["trailer"],
        "technical_specs": ["4K"],
    },
    "constraints": {
        "duration_seconds": 30,
        "aspect_ratio": "16:9",
        "platform": ["YouTube"],
    },
    "gaps": {
        "missing_duration": False,
        "missing_aspect_ratio": False,
        "missing_style_direction": False,
        "missing_target_audience": True,
        "missing_platform_specs": False,
        "missing_mood_tone": False,
        "vague_requirements": False,
        "needs_clarification": ["Who is the target audience?"],
    },
    "creative_reframing": {
        "alternative_interpretations": [
            {"interpretation": "Neon Noir", "rationale": "Dark detective mood", "confidence": 0.85},
            {"interpretation": "Fast-paced Montage", "rationale": "Energetic cuts", "confidence": 0.7},
        ],
        "suggested_enhancements": ["Add synthwave score"],
        "potential_directions": [],
    },
}

SYNTHESIS_REPLY = (
    "CREATIVE DIRECTION: Neon-soaked cyberpunk trailer built around the city footage\n"
    "TARGET OUTCOME: A 30 second cinematic trailer with a dramatic build\n"
    "REASONING: The request and assets both point to a dark futuristic tone"
)

IMAGE_DESCRIPTION = (
    "A high quality, sharp and detailed image of a neon city street at night with a person "
    "standing under red and blue lights, modern cinematic style, dramatic mood"
)
VIDEO_DESCRIPTION = (
    "High definition, smooth and professional cinematic cyberpunk footage of a car driving through "
    "a neon city at night, ready to create a dramatic trailer, modern style"
)
TRANSCRIPT = "In a city that never sleeps, one voice will rise. This summer, the future fights back."


class FakeTextClient:
    """Text model stand-in answering query analysis and synthesis prompts."""

    def __init__(
        self,
        analysis: Optional[Dict[str, Any]] = None,
        *,
        synthesis: str = SYNTHESIS_REPLY,
        fail_models: Optional[List[str]] = None,
        chain: Optional[List[str]] = None,
    ) -> None:
        self.analysis = analysis if analysis is not None else QUERY_ANALYSIS_REPLY
        self.synthesis = synthesis
        self.fail_models = set(fail_models or [])
        self.chain = chain or ["fake-llama-405b", "fake-qwen-72b"]
        self.calls: List[Dict[str, Any]] = []

    def resolve_chain(self, preference: Optional[str] = None) -> List[str]:
        return list(self.chain)

    def chat(self, messages, *, model, temperature=None, top_p=None, max_tokens=None) -> str:
        self.calls.append({"model": model, "messages": messages, "temperature": temperature})
        if model in self.fail_models:
            raise ProviderError("text", f"{model} returned HTTP 503", model=model)
        if messages[0]["role"] == "system":
            return "Here is the analysis:\n" + json.dumps(self.analysis)
        return self.synthesis


class FakeVisionClient:
    """Vision stand-in; ``failing`` maps asset urls to the exception they raise."""

    def __init__(self, failing: Optional[Dict[str, Exception]] = None) -> None:
        self.failing = failing or {}
        self.calls: List[Dict[str, Any]] = []

    def models_for(self, media_type: str) -> List[str]:
        return {
            "image": ["fake-llava", "fake-blip"],
            "video": ["fake-apollo"],
            "audio": ["fake-whisper"],
        }.get(media_type, [])

    def describe(self, url: str, media_type: str, prompt: str, *, model: str) -> str:
        self.calls.append({"url": url, "model": model})
        if url in self.failing:
            raise self.failing[url]
        return VIDEO_DESCRIPTION if media_type == "video" else IMAGE_DESCRIPTION

    def transcribe(self, url: str, *, model: str) -> str:
        self.calls.append({"url": url, "model": model})
        if url in self.failing:
            raise self.failing[url]
        return TRANSCRIPT


@pytest.fixture()
def secrets_file(tmp_path):
    path = tmp_path / "appkeys.json"
    path.write_text(json.dumps({"test-app": "secret-key"}), encoding="utf-8")
    return path


@pytest.fixture()
def test_settings(secrets_file, tmp_path) -> Settings:
    return Settings(
        service_name="dreamcut-analyzer-test",
        environment="test",
        api_version="v1",
        base_url="/api/v1",
        text_model=TextModelSettings(api_base="https://text.example.com/v1", api_key="text-key"),
        vision_model=VisionModelSettings(api_base="https://vision.example.com/v1", api_key="vision-key"),
        pipeline=PipelineSettings(max_concurrent_assets=3, asset_timeout_sec=5),
        realtime=RealtimeSettings(backend="memory"),
        logging=LoggingSettings(level="DEBUG", log_dir=str(tmp_path / "logs")),
        api_auth=APIAuthSettings(
            required=True,
            app_secrets_path=str(secrets_file),
            header_appid="X-DreamCut-Appid",
            header_key="X-DreamCut-Key",
        ),
        celery=CeleryQueueSettings(task_always_eager=True),
    )


@pytest.fixture()
def cyberpunk_query() -> str:
    return CYBERPUNK_QUERY


@pytest.fixture()
def analysis_reply() -> Dict[str, Any]:
    return json.loads(json.dumps(QUERY_ANALYSIS_REPLY))


@pytest.fixture()
def text_client_factory():
    return FakeTextClient


@pytest.fixture()
def vision_client_factory():
    return FakeVisionClient


@pytest.fixture()
def text_client() -> FakeTextClient:
    return FakeTextClient()


@pytest.fixture()
def vision_client() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture()
def make_asset() -> Callable[..., AssetInput]:
    def _make(asset_id: str, media_type: str = "image", url: Optional[str] = None, **extra: Any) -> AssetInput:
        extension = {"image": "jpg", "video": "mp4", "audio": "mp3"}[media_type]
        return AssetInput(
            id=asset_id,
            url=url or f"https://cdn.example.com/{asset_id}.{extension}",
            media_type=media_type,
            **extra,
        )

    return _make


@pytest.fixture()
def query_result(text_client) -> Dict[str, Any]:
    from dreamcut_analyzer.query_analyzer import analyze_user_query

    result = analyze_user_query(CYBERPUNK_QUERY, text_client, {})
    assert result.success
    return result.result


@pytest.fixture()
def noop_validator(monkeypatch) -> Callable[[str, str], bool]:
    class _Validator:
        def __init__(self) -> None:
            self.checked: list[tuple[str, str]] = []

        def is_valid(self, appid: str, key: str) -> bool:
            self.checked.append((appid, key))
            return True

    validator = _Validator()
    monkeypatch.setattr("dreamcut_analyzer.security.get_validator", lambda path: validator)
    return validator
