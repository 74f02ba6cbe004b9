"""Tests for Step 2 bounded parallel asset analysis."""

from __future__ import annotations

import threading
import time

from dreamcut_analyzer.asset_analyzer import (
    analyze_assets,
    analyze_query_alignment,
    analyze_single_asset,
    assess_audio_quality,
    assess_image_quality,
    calculate_confidence,
    extract_mood,
)
from dreamcut_analyzer.errors import ProviderError, ProviderUnavailable

QUERY = "Create a cinematic 30s cyberpunk trailer."


def test_keyword_heuristics():
    assert assess_image_quality("a high quality, sharp and detailed photo") == 8
    assert assess_image_quality("blurry, grainy, pixelated, poor, low quality shot") == 1
    assert assess_audio_quality("short") == 2
    assert extract_mood("a calm and peaceful lake") == "calm"
    assert extract_mood("a plain box") == "neutral"
    assert calculate_confidence(True, "x" * 600, "image") == 0.7
    assert calculate_confidence(False, "short", "image") == 0.8


def test_query_alignment_roles():
    strong = analyze_query_alignment("cinematic cyberpunk footage to create", QUERY, None)
    weak = analyze_query_alignment("a bowl of fruit", QUERY, None)

    assert strong["alignment_score"] == 0.75
    assert strong["role_in_project"] == "primary_content"
    assert strong["supports_query_intent"] is True
    assert weak["alignment_score"] == 0
    assert weak["role_in_project"] == "unclear"


def test_empty_asset_list_succeeds_with_zero_total(vision_client):
    result = analyze_assets([], QUERY, vision_client)

    assert result.success
    assert result.result["total_assets"] == 0
    assert result.result["asset_analyses"] == []
    assert vision_client.calls == []


def test_single_image_analysis_shape(vision_client, make_asset):
    asset = make_asset("img-1", "image", metadata={"width": 1920, "height": 1080, "file_size": 1536})

    entry = analyze_single_asset(asset, QUERY, vision_client, {})

    assert entry["asset_id"] == "img-1"
    assert entry["metadata"]["format"] == "jpg"
    assert entry["metadata"]["dimensions"] == {"width": 1920, "height": 1080}
    assert entry["metadata"]["quality_score"] == 8
    assert "neon" in entry["metadata"]["color_analysis"]["dominant_colors"]
    assert entry["processing_info"]["success"] is True
    assert entry["processing_info"]["models_used"] == ["fake-llava"]
    assert entry["processing_info"]["fallback_used"] is False


def test_free_form_metadata_values_are_ignored(vision_client, make_asset):
    asset = make_asset(
        "img-1", "image", metadata={"file_size": "2MB", "width": "wide", "height": 1080, "duration": True}
    )

    entry = analyze_single_asset(asset, QUERY, vision_client, {})

    assert entry["metadata"]["file_size"] is None
    assert entry["metadata"]["dimensions"] is None
    assert entry["processing_info"]["success"] is True


def test_model_fallback_within_asset(vision_client_factory, make_asset):
    class _FirstModelDown(vision_client_factory):
        def describe(self, url, media_type, prompt, *, model):
            if model == "fake-llava":
                self.calls.append({"url": url, "model": model})
                raise ProviderError("vision", "llava overloaded", model=model)
            return super().describe(url, media_type, prompt, model=model)

    client = _FirstModelDown()
    entry = analyze_single_asset(make_asset("img-1"), QUERY, client, {})

    assert entry["processing_info"]["models_used"] == ["fake-blip"]
    assert entry["processing_info"]["fallback_used"] is True
    assert entry["processing_info"]["confidence_score"] == 0.6


def test_audio_asset_is_transcribed(vision_client, make_asset):
    entry = analyze_single_asset(make_asset("voice", "audio"), QUERY, vision_client, {})

    assert entry["content_analysis"]["transcription"].startswith("In a city")
    assert entry["content_analysis"]["style_analysis"] == "spoken"
    assert entry["metadata"]["duration_seconds"] == 10.0
    assert entry["processing_needs"]["requires_enhancement"] is False


def test_failing_asset_degrades_without_failing_batch(vision_client_factory, make_asset):
    broken = make_asset("img-bad", "image", url="https://cdn.example.com/bad.jpg")
    good = make_asset("vid-1", "video")
    client = vision_client_factory({broken.url: ProviderError("vision", "HTTP 500")})

    result = analyze_assets([broken, good], QUERY, client, max_concurrent=2)

    assert result.success
    batch = result.result
    assert batch["total_assets"] == 2
    assert batch["successful_analyses"] == 1
    assert batch["failed_analyses"] == 1
    assert [entry["asset_id"] for entry in batch["asset_analyses"]] == ["img-bad", "vid-1"]
    failed = batch["asset_analyses"][0]
    assert failed["processing_info"]["success"] is False
    assert failed["alignment_with_query"]["role_in_project"] == "unclear"
    assert "HTTP 500" in failed["processing_info"]["error_messages"][0]
    assert batch["summary"]["asset_type_breakdown"] == {"video": 1}
    assert batch["processing_metadata"]["performance_metrics"]["success_rate"] == 0.5


def test_all_assets_unreachable_fails_step(vision_client_factory, make_asset):
    assets = [make_asset("a"), make_asset("b", "video")]
    client = vision_client_factory(
        {asset.url: ProviderUnavailable("vision", "connection refused") for asset in assets}
    )

    result = analyze_assets(assets, QUERY, client)

    assert not result.success
    assert "unavailable for all 2 assets" in result.error


def test_results_keep_input_order_and_respect_concurrency(vision_client_factory, make_asset):
    active = {"now": 0, "peak": 0}
    lock = threading.Lock()

    class _SlowClient(vision_client_factory):
        def describe(self, url, media_type, prompt, *, model):
            with lock:
                active["now"] += 1
                active["peak"] = max(active["peak"], active["now"])
            # later assets finish first
            time.sleep(0.05 if url.endswith("a0.jpg") else 0.01)
            with lock:
                active["now"] -= 1
            return super().describe(url, media_type, prompt, model=model)

    assets = [make_asset(f"a{i}") for i in range(5)]
    started: list[str] = []

    result = analyze_assets(
        assets,
        QUERY,
        _SlowClient(),
        max_concurrent=2,
        on_asset_start=lambda asset: started.append(asset.id),
    )

    assert result.success
    assert [entry["asset_id"] for entry in result.result["asset_analyses"]] == [a.id for a in assets]
    assert active["peak"] <= 2
    assert sorted(started) == [a.id for a in assets]
    assert result.result["processing_metadata"]["parallel_processing_used"] is True


def test_slow_asset_times_out_into_degraded_entry(vision_client_factory, make_asset):
    class _HangingClient(vision_client_factory):
        def describe(self, url, media_type, prompt, *, model):
            if "slow" in url:
                time.sleep(0.5)
            return super().describe(url, media_type, prompt, model=model)

    assets = [make_asset("slow"), make_asset("fast")]

    result = analyze_assets(assets, QUERY, _HangingClient(), max_concurrent=2, timeout_per_asset=0.1)

    assert result.success
    slow, fast = result.result["asset_analyses"]
    assert slow["processing_info"]["success"] is False
    assert "timed out" in slow["processing_info"]["error_messages"][0]
    assert fast["processing_info"]["success"] is True
