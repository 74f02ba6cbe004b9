"""Tests for Step 4 final analysis assembly."""

from __future__ import annotations

import json

import pytest

from dreamcut_analyzer.asset_analyzer import analyze_assets
from dreamcut_analyzer.combiner import combine_query_and_assets
from dreamcut_analyzer.fallback import build_default_combined
from dreamcut_analyzer.summarizer import (
    create_final_analysis_output,
    determine_asset_role_from_analysis,
    estimate_project_timeline,
    format_duration,
    format_file_size,
    gap_category,
    map_quality_score,
    priority_level,
    tool_type,
)

TIMESTAMP = "2026-01-01T00:00:00+00:00"
TIMINGS = {"step1": 10, "step2": 20, "step3": 5}


@pytest.fixture()
def asset_free_inputs(query_result, vision_client):
    assets = analyze_assets([], query_result["normalized_prompt"], vision_client).result
    return query_result, assets, build_default_combined(query_result)


@pytest.fixture()
def asset_driven_inputs(query_result, vision_client, text_client, make_asset):
    video = make_asset("vid-1", "video", metadata={"duration_seconds": 45, "width": 1920, "height": 1080})
    image = make_asset(
        "img-1", "image", metadata={"width": 1080, "height": 1080, "file_size": 1536}, user_description="Mood"
    )
    assets = analyze_assets([video, image], query_result["normalized_prompt"], vision_client).result
    combined = combine_query_and_assets(query_result, assets, text_client, {}).result
    return query_result, assets, combined


def test_format_helpers():
    assert format_file_size(1536) == "1.5 KB"
    assert format_file_size(500) == "500 Bytes"
    assert format_file_size(0) == "0 Bytes"
    assert format_file_size(None) is None
    assert format_file_size(0.5) == "0.5 Bytes"
    assert format_file_size("2MB") is None
    assert format_duration(45) == "45s"
    assert format_duration(90) == "1m 30s"
    assert format_duration(3720) == "1h 2m"
    assert format_duration(0) is None
    assert map_quality_score(9.5) == "professional"
    assert map_quality_score(6) == "good"
    assert map_quality_score(None) is None


def test_mapping_helpers():
    assert gap_category("missing_duration") == "technical"
    assert gap_category("missing_style_direction") == "style"
    assert gap_category("missing_target_audience") == "platform"
    assert gap_category("vague_requirements") == "content"
    assert tool_type("AI upscaling model") == "ai_model"
    assert tool_type("video_editor") == "creative_software"
    assert tool_type("color_correction") == "processing_tool"
    assert priority_level("cost", "cost") == "important"
    assert priority_level("speed", "balanced") == "recommended"
    assert priority_level("speed", "cost") == "optional"
    assert estimate_project_timeline([]) == "Unknown"
    assert estimate_project_timeline([{"estimated_time": "20-40 minutes"}]) == "30 minutes"
    assert estimate_project_timeline([{"estimated_time": "60-120 minutes"}]) == "2 hours"


def test_failed_asset_role_is_unusable():
    entry = {"asset_id": "a", "asset_type": "image", "processing_info": {"success": False}}

    assert determine_asset_role_from_analysis(entry, "video", {"asset_utilization": {}}) == "unusable"


def test_asset_free_output(asset_free_inputs):
    query, assets, combined = asset_free_inputs

    result = create_final_analysis_output(query, assets, combined, {}, timestamp=TIMESTAMP, step_timings=TIMINGS)

    assert result.success
    output = result.result
    metadata = output["analysis_metadata"]
    assert metadata["analysis_id"] == combined["project_id"]
    assert metadata["timestamp"] == TIMESTAMP
    assert metadata["total_processing_time_ms"] == 35
    assert metadata["session_mode"] == "asset_free"
    assert metadata["completion_status"] == "complete"
    assert metadata["analyzer_confidence"] == 0.92
    assert output["assets_analysis"]["total_assets_processed"] == 0
    assert output["global_understanding"]["asset_utilization"]["total_assets"] == 0
    assert output["global_understanding"]["project_feasibility"]["resource_adequacy"] == 0.8
    assert output["comprehensive_summary"]["assets_comprehensive"] == []
    warnings = output["processing_insights"]["warnings_and_notes"]
    assert warnings[-1]["type"] == "limitation"
    gaps = output["query_summary"]["identified_gaps"]
    assert [gap["description"] for gap in gaps] == ["Target audience not defined"]


def test_output_is_deterministic(asset_driven_inputs):
    query, assets, combined = asset_driven_inputs

    first = create_final_analysis_output(query, assets, combined, {}, timestamp=TIMESTAMP, step_timings=TIMINGS)
    second = create_final_analysis_output(query, assets, combined, {}, timestamp=TIMESTAMP, step_timings=TIMINGS)

    assert json.dumps(first.result) == json.dumps(second.result)


def test_asset_driven_output(asset_driven_inputs):
    query, assets, combined = asset_driven_inputs

    output = create_final_analysis_output(
        query, assets, combined, {}, analysis_id="analysis-1", timestamp=TIMESTAMP, step_timings=TIMINGS
    ).result

    assert output["analysis_metadata"]["analysis_id"] == "analysis-1"
    assert output["analysis_metadata"]["session_mode"] == "asset_driven"
    individual = {item["asset_id"]: item for item in output["assets_analysis"]["individual_assets"]}
    assert individual["vid-1"]["metadata_summary"]["duration"] == "45s"
    assert individual["vid-1"]["alignment_with_query"]["role_in_project"] == "primary_content"
    assert individual["img-1"]["metadata_summary"]["file_size"] == "1.5 KB"
    assert individual["img-1"]["metadata_summary"]["dimensions"] == "1080x1080"
    roles = output["global_understanding"]["asset_utilization"]["asset_roles"]
    assert roles == {"vid-1": "primary_content", "img-1": "reference_material"}
    conflicts = output["global_understanding"]["conflict_resolutions"]
    assert {item["type"] for item in conflicts} == {"duration_exceeds_request", "aspect_ratio_mismatch"}
    readiness = output["comprehensive_summary"]["production_readiness"]
    assert readiness["asset_roles_assigned"] == {"vid-1": "primary footage", "img-1": "style reference"}
    catalog_titles = [item["title"] for item in output["creative_options"]["option_catalog"]]
    assert catalog_titles == ["Neon Noir", "Fast-paced Montage", "Professional Standard Production"]
    usage = output["processing_insights"]["model_usage_summary"]
    assert [step["step_name"] for step in usage] == ["Query Analysis", "Asset Analysis", "Synthesis & Combination"]
    assert usage[1]["models_used"] == ["fake-apollo", "fake-llava"]
    comprehensive = output["comprehensive_summary"]["assets_comprehensive"]
    assert [item["id"] for item in comprehensive] == ["vid-1", "img-1"]
    assert comprehensive[1]["user_description"] == "Mood"


def test_summary_detail_trims_output(asset_driven_inputs):
    query, assets, combined = asset_driven_inputs

    output = create_final_analysis_output(
        query,
        assets,
        combined,
        {"detail_level": "summary", "include_processing_insights": False, "include_detailed_pipeline": False},
        timestamp=TIMESTAMP,
    ).result

    assert "assets_comprehensive" not in output["comprehensive_summary"]
    assert all(len(item["content_summary"]["key_elements"]) <= 3 for item in output["assets_analysis"]["individual_assets"])
    assert output["processing_insights"]["model_usage_summary"] == []
    assert "tools_and_models" not in output["pipeline_recommendations"]["recommended_workflow"][0]


def test_critical_gap_marks_output_partial(query_result, vision_client, text_client, make_asset):
    square = make_asset("square", "image", metadata={"width": 1080, "height": 1080})
    assets = analyze_assets([square], query_result["normalized_prompt"], vision_client).result
    combined = combine_query_and_assets(query_result, assets, text_client, {}).result

    output = create_final_analysis_output(query_result, assets, combined, {}, timestamp=TIMESTAMP).result

    assert output["analysis_metadata"]["completion_status"] == "partial"
    risks = output["global_understanding"]["project_feasibility"]["risk_factors"]
    assert "Critical gaps may impact project success" in risks


def test_missing_inputs_fail(query_result):
    result = create_final_analysis_output(query_result, {"total_assets": 0}, {})

    assert not result.success
    assert "required" in result.error


def test_malformed_combined_reports_failure(asset_free_inputs):
    query, assets, combined = asset_free_inputs
    del combined["synthesis_metadata"]

    result = create_final_analysis_output(query, assets, combined, {}, timestamp=TIMESTAMP)

    assert not result.success
    assert result.error.startswith("Summary creation failed:")
