"""Tests for the asset-free project plan and legacy briefs."""

from __future__ import annotations

from dreamcut_analyzer.fallback import build_default_combined, build_legacy_brief, final_specifications


def test_asset_free_plan_shape(query_result):
    combined = build_default_combined(query_result)

    assert combined["session_mode"] == "asset_free"
    assert combined["project_id"].startswith("project")
    assert combined["unified_intent"]["primary_output_type"] == "video"
    assert combined["unified_intent"]["confidence"] == 0.92
    assert all(bucket == [] for bucket in combined["asset_utilization"].values())
    assert combined["conflict_resolutions"] == []
    specs = combined["unified_constraints"]["output_specifications"]
    assert specs["video_duration_seconds"] == 30
    assert specs["image_count"] is None
    assert specs["aspect_ratio"] == "16:9"
    assert combined["unified_constraints"]["platform_constraints"]["target_platforms"] == ["YouTube"]
    assert combined["creative_synthesis"]["narrative_structure"]
    assert combined["synthesis_metadata"]["synthesis_approach"] == "query_only_defaults"
    missing = [item["element_type"] for item in combined["gap_analysis"]["missing_elements"]]
    assert "aspect_ratio" not in missing


def test_hints_override_query_values(query_result):
    hints = {"intent": "mix", "duration_seconds": 15, "aspect_ratio": "9:16", "image_count": 4, "platform": "TikTok"}

    combined = build_default_combined(query_result, hints, optimization_focus="speed")

    assert combined["unified_intent"]["primary_output_type"] == "mixed"
    specs = combined["unified_constraints"]["output_specifications"]
    assert specs["video_duration_seconds"] == 15
    assert specs["image_count"] == 4
    assert specs["aspect_ratio"] == "9:16"
    assert combined["unified_constraints"]["platform_constraints"]["target_platforms"] == ["TikTok", "YouTube"]
    suggestion_types = [
        item["optimization_type"] for item in combined["production_recommendations"]["optimization_suggestions"]
    ]
    assert suggestion_types == ["performance"]


def test_final_specifications_defaults():
    assert final_specifications({"constraints": {}}, {}) == {
        "duration_seconds": 30,
        "aspect_ratio": "16:9",
        "image_count": 1,
        "quality_level": "professional",
    }


def test_unknown_hint_intent_is_ignored(query_result):
    combined = build_default_combined(query_result, {"intent": "hologram"})

    assert combined["unified_intent"]["primary_output_type"] == "video"


def test_build_legacy_brief():
    brief = build_legacy_brief({"query": "q"}, {"analysis_metadata": {}}, brief_id="brief_1", created_at="t")

    assert brief == {
        "briefId": "brief_1",
        "createdAt": "t",
        "request": {"query": "q"},
        "status": "analyzed",
        "comprehensive_analysis": {"analysis_metadata": {}},
    }
