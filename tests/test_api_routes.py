"""Tests for FastAPI routes and request validation."""

from __future__ import annotations

import pytest
from celery.exceptions import CeleryError
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dreamcut_analyzer.api.routes import pipeline_dependency, router, store_dependency
from dreamcut_analyzer.config import Settings, settings_dependency
from dreamcut_analyzer.pipeline import AnalysisPipeline
from dreamcut_analyzer.security import authenticate_request
from dreamcut_analyzer.store import QUERIES, InMemoryRecordStore

QUERY = "Create a cinematic 30s cyberpunk trailer"


@pytest.fixture()
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture()
def api_app(test_settings: Settings, text_client, vision_client, record_store) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[settings_dependency] = lambda: test_settings
    app.dependency_overrides[authenticate_request] = lambda: None
    app.dependency_overrides[pipeline_dependency] = lambda: AnalysisPipeline(
        test_settings, text_client, vision_client
    )
    app.dependency_overrides[store_dependency] = lambda: record_store
    return app


@pytest.fixture()
def api_client(api_app: FastAPI) -> TestClient:
    return TestClient(api_app)


@pytest.fixture()
def mock_celery(monkeypatch):
    payloads: list[dict] = []

    class _Task:
        def delay(self, payload):
            payloads.append(payload)

    monkeypatch.setattr("dreamcut_analyzer.api.routes.realtime_analysis", _Task())
    return payloads


def test_unified_analyzer_returns_analysis(api_client, text_client):
    body = {
        "query": QUERY,
        "assets": [
            {
                "url": "https://cdn.example.com/city.mp4",
                "mediaType": "video",
                "userDescription": "Night drive",
                "metadata": {"duration_seconds": 45},
            }
        ],
        "options": {"step4": {"detail_level": "comprehensive"}},
    }

    response = api_client.post("/dreamcut/unified-analyzer", json=body)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    analysis = data["analysis"]
    assert analysis["analysis_metadata"]["session_mode"] == "asset_driven"
    asset = analysis["comprehensive_summary"]["assets_comprehensive"][0]
    assert asset["id"].startswith("asset_0_")
    assert asset["user_description"] == "Night drive"
    assert data["metadata"]["analysisType"] == "unified_4_step_pipeline"
    assert data["metadata"]["steps_completed"] == ["query_analysis", "asset_analysis", "combination", "summary"]
    assert data["metadata"]["models_invoked"][0] == "fake-llama-405b"
    assert data["metadata"]["confidence_score"] == analysis["analysis_metadata"]["analyzer_confidence"]


def test_unified_analyzer_tolerates_free_form_metadata(api_client):
    body = {
        "query": QUERY,
        "assets": [
            {"url": "https://cdn.example.com/poster.jpg", "mediaType": "image", "metadata": {"file_size": "2MB"}}
        ],
    }

    response = api_client.post("/dreamcut/unified-analyzer", json=body)

    assert response.status_code == 200
    individual = response.json()["analysis"]["assets_analysis"]["individual_assets"][0]
    assert individual["metadata_summary"]["file_size"] is None


def test_missing_query_is_rejected_before_any_model_call(api_client, text_client, vision_client):
    response = api_client.post("/dreamcut/unified-analyzer", json={"assets": []})

    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "Invalid request format"
    assert data["details"][0]["loc"] == ["query"]
    assert text_client.calls == []
    assert vision_client.calls == []


def test_non_json_body_is_rejected(api_client):
    response = api_client.post(
        "/dreamcut/query-analyzer", content="not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["details"][0]["type"] == "json_invalid"


def test_invalid_asset_type_is_rejected(api_client):
    body = {"query": QUERY, "assets": [{"url": "https://cdn.example.com/a.pdf", "mediaType": "document"}]}

    response = api_client.post("/dreamcut/unified-analyzer", json=body)

    assert response.status_code == 400
    assert response.json()["details"][0]["loc"][:2] == ["assets", 0]


def test_pipeline_failure_returns_500(api_app, test_settings, text_client_factory, vision_client):
    failing = text_client_factory(fail_models=["fake-llama-405b", "fake-qwen-72b"])
    api_app.dependency_overrides[pipeline_dependency] = lambda: AnalysisPipeline(test_settings, failing, vision_client)
    client = TestClient(api_app)

    response = client.post("/dreamcut/unified-analyzer", json={"query": QUERY})

    assert response.status_code == 500
    data = response.json()
    assert data["success"] is False
    assert data["error"].startswith("Query analysis failed: All models failed")


def test_legacy_analyzer_persists_brief(api_client, record_store):
    body = {
        "query": QUERY,
        "intent": "video",
        "outputVideoSeconds": 20,
        "preferences": {"aspect_ratio": "9:16"},
    }

    response = api_client.post("/dreamcut/query-analyzer", json=body)

    assert response.status_code == 200
    data = response.json()
    brief = data["brief"]
    assert brief["status"] == "analyzed"
    assert brief["request"]["outputVideoSeconds"] == 20
    assert data["metadata"]["analysisType"] == "comprehensive_4_step_pipeline"
    specs = data["analysis"]["comprehensive_summary"]["creative_synthesis"]["asset_utilization"]
    assert specs == {"primary_assets": [], "reference_assets": [], "supporting_assets": [], "unused_assets": []}

    fetched = api_client.get(f"/dreamcut/briefs/{brief['briefId']}")
    assert fetched.status_code == 200
    assert fetched.json()["brief"]["briefId"] == brief["briefId"]


def test_legacy_hints_shape_asset_free_plan(api_client):
    body = {"query": QUERY, "outputVideoSeconds": 20, "preferences": {"aspect_ratio": "9:16"}}

    analysis = api_client.post("/dreamcut/query-analyzer", json=body).json()["analysis"]

    technical = analysis["query_summary"]["extracted_constraints"]["technical_requirements"]
    assert technical["duration_seconds"] == 30
    planned = analysis["comprehensive_summary"]["creative_synthesis"]
    assert planned["session_mode"] == "asset_free"


def test_unknown_brief_returns_404(api_client):
    response = api_client.get("/dreamcut/briefs/brief_missing")

    assert response.status_code == 404
    assert response.json()["detail"]["error_code"] == "ERR_BRIEF_NOT_FOUND"


def test_realtime_analyzer_queues_task(api_client, mock_celery, record_store):
    body = {
        "query": QUERY,
        "user_id": "user-1",
        "assets": [{"url": "https://cdn.example.com/hero.jpg", "mediaType": "image", "description": "Hero shot"}],
    }

    response = api_client.post("/dreamcut/realtime-analyzer", json=body)

    assert response.status_code == 202
    data = response.json()
    query_id = data["query_id"]
    assert query_id.startswith("dq_")
    assert data["channel"] == f"dreamcut_queries:{query_id}"
    assert data["realtime_subscription"]["channel"] == data["channel"]
    assert [step["stage"] for step in data["expected_flow"]] == ["init", "analyzing", "merging", "complete"]
    assert data["storyboard_preview"]["expected_assets"] == 1

    assert len(mock_celery) == 1
    payload = mock_celery[0]
    assert payload["query_id"] == query_id
    assert payload["user_id"] == "user-1"
    assert payload["assets"][0]["user_description"] == "Hero shot"
    assert payload["assets"][0]["media_type"] == "image"
    assert "realtime" not in payload["options"]
    assert payload["options"]["step4"]["detail_level"] == "comprehensive"

    record = record_store.get(QUERIES, query_id)
    assert record["status"] == "queued"
    assert record["assets_count"] == 1

    status = api_client.get(f"/dreamcut/realtime-analyzer/{query_id}")
    assert status.status_code == 200
    assert status.json()["status"] == "queued"


def test_realtime_analyzer_uses_supplied_query_id(api_client, mock_celery):
    body = {"query": QUERY, "user_id": "user-1", "query_id": "dq_custom"}

    data = api_client.post("/dreamcut/realtime-analyzer", json=body).json()

    assert data["query_id"] == "dq_custom"
    assert mock_celery[0]["assets"] == []


def test_realtime_analyzer_requires_user_id(api_client, mock_celery):
    response = api_client.post("/dreamcut/realtime-analyzer", json={"query": QUERY})

    assert response.status_code == 400
    assert mock_celery == []


def test_realtime_enqueue_failure_marks_record_failed(api_client, monkeypatch, record_store):
    class _BrokenTask:
        def delay(self, payload):
            raise CeleryError("broker unavailable")

    monkeypatch.setattr("dreamcut_analyzer.api.routes.realtime_analysis", _BrokenTask())
    body = {"query": QUERY, "user_id": "user-1", "query_id": "dq_broken"}

    response = api_client.post("/dreamcut/realtime-analyzer", json=body)

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Background analysis task could not be scheduled"
    assert "broker unavailable" in data["stack"]
    record = record_store.get(QUERIES, "dq_broken")
    assert record["status"] == "failed"
    assert record["error"].startswith("Task enqueue failed")


def test_unknown_query_status_returns_404(api_client):
    response = api_client.get("/dreamcut/realtime-analyzer/dq_missing")

    assert response.status_code == 404
    assert response.json()["detail"]["error_code"] == "ERR_QUERY_NOT_FOUND"


def test_capability_documents(api_client):
    legacy = api_client.get("/dreamcut/query-analyzer").json()
    unified = api_client.get("/dreamcut/unified-analyzer").json()
    realtime = api_client.get("/dreamcut/realtime-analyzer").json()

    assert legacy["name"] == "DreamCut Query Analyzer"
    assert unified["usage"]["endpoint"] == "/api/v1/dreamcut/unified-analyzer"
    assert unified["models"]["video"] == ["apollo-7b", "qwen2.5-omni-7b"]
    assert realtime["subscription"]["channel_pattern"] == "dreamcut_queries:{query_id}"
    assert [step["stage"] for step in realtime["storyboard_flow"]][-1] == "failed"


def _run_steps(api_client) -> dict:
    step1 = api_client.post("/dreamcut/step1-analyzer", json={"query": QUERY}).json()
    step2 = api_client.post(
        "/dreamcut/step2-asset-analyzer",
        json={
            "user_query": QUERY,
            "assets": [{"url": "https://cdn.example.com/hero.jpg", "media_type": "image", "user_description": "Hero"}],
        },
    ).json()
    step3 = api_client.post(
        "/dreamcut/step3-combination-analyzer",
        json={
            "query_analysis": step1["query_analysis"],
            "asset_analysis": step2["analysis_result"],
            "project_name": "Neon Nights",
        },
    ).json()
    return {"step1": step1, "step2": step2, "step3": step3}


def test_step1_analyzer_returns_query_analysis(api_client, vision_client):
    response = api_client.post("/dreamcut/step1-analyzer", json={"query": QUERY})

    assert response.status_code == 200
    data = response.json()
    assert data["request_id"].startswith("step1_")
    assert data["model_used"] == "fake-llama-405b"
    assert data["query_analysis"]["intent"]["primary_output_type"] == "video"
    assert data["default_constraints"]["suggested_aspect_ratio"]
    assert data["debug"]["original_query_length"] == len(QUERY)
    assert data["debug"]["normalization_applied"] is True
    assert vision_client.calls == []


def test_step2_requires_at_least_one_asset(api_client, vision_client):
    response = api_client.post("/dreamcut/step2-asset-analyzer", json={"user_query": QUERY, "assets": []})

    assert response.status_code == 400
    assert response.json()["details"][0]["loc"] == ["assets"]
    assert vision_client.calls == []


def test_step_endpoints_chain_into_final_analysis(api_client):
    steps = _run_steps(api_client)

    step2 = steps["step2"]
    assert step2["request_id"].startswith("step2_")
    assert step2["summary"]["total_assets"] == 1
    assert step2["summary"]["successful_analyses"] == 1
    step3 = steps["step3"]
    assert step3["executive_summary"]["project_title"] == "Neon Nights"
    assert step3["unified_understanding"]["project_title"] == "Neon Nights"
    assert step3["executive_summary"]["asset_utilization"]["utilization_rate"] >= 0

    body = {
        "query_analysis": steps["step1"]["query_analysis"],
        "asset_analysis": step2["analysis_result"],
        "unified_understanding": step3["unified_understanding"],
        "processing_times": {"step1_ms": 100, "step2_ms": 200, "step3_ms": 300},
        "options": {"detail_level": "comprehensive"},
    }
    response = api_client.post("/dreamcut/step4-json-summarizer", json=body)

    assert response.status_code == 200
    data = response.json()
    assert data["request_id"].startswith("step4_")
    assert data["total_pipeline_time_ms"] >= 600
    assert data["performance_metrics"]["step_breakdown"]["step2_asset_analysis"] == 200
    assert data["performance_metrics"]["time_per_asset_ms"] == 200
    metadata = data["final_analysis"]["analysis_metadata"]
    assert data["pipeline_status"]["completion_quality"] == metadata["completion_status"]

    formatted = api_client.post("/dreamcut/step4-json-summarizer", json={**body, "export_format": "formatted"})
    assert formatted.status_code == 200
    assert formatted.text.startswith('{\n  "success": true')


def test_step3_rejects_incomplete_structures(api_client, query_result, text_client):
    incomplete = {key: value for key, value in query_result.items() if key != "modifiers"}
    calls_before = len(text_client.calls)

    missing_fields = api_client.post(
        "/dreamcut/step3-combination-analyzer",
        json={"query_analysis": incomplete, "asset_analysis": {"asset_analyses": []}},
    )
    missing_assets = api_client.post(
        "/dreamcut/step3-combination-analyzer",
        json={"query_analysis": query_result, "asset_analysis": {"total_assets": 0}},
    )

    assert missing_fields.status_code == 400
    assert missing_fields.json()["error_code"] == "INVALID_QUERY_ANALYSIS"
    assert missing_assets.status_code == 400
    assert missing_assets.json()["error_code"] == "INVALID_ASSET_ANALYSIS"
    assert len(text_client.calls) == calls_before


def test_step4_rejects_incomplete_unified_understanding(api_client, query_result):
    body = {
        "query_analysis": query_result,
        "asset_analysis": {"asset_analyses": []},
        "unified_understanding": {"project_title": "Untitled"},
    }

    response = api_client.post("/dreamcut/step4-json-summarizer", json=body)

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_UNIFIED_UNDERSTANDING"


def test_step1_failure_reports_error_code(api_app, test_settings, text_client_factory, vision_client):
    failing = text_client_factory(fail_models=["fake-llama-405b", "fake-qwen-72b"])
    api_app.dependency_overrides[pipeline_dependency] = lambda: AnalysisPipeline(test_settings, failing, vision_client)

    response = TestClient(api_app).post("/dreamcut/step1-analyzer", json={"query": QUERY})

    assert response.status_code == 500
    assert response.json()["error_code"] == "ANALYSIS_FAILED"


def test_step_capability_documents(api_client):
    step1 = api_client.get("/dreamcut/step1-analyzer").json()
    step4 = api_client.get("/dreamcut/step4-json-summarizer").json()

    assert step1["name"] == "DreamCut Step 1 Query Analyzer"
    assert step1["endpoint"] == "/api/v1/dreamcut/step1-analyzer"
    assert step4["name"] == "DreamCut Step 4 JSON Summarizer"
    assert step4["models"]["video"] == ["apollo-7b", "qwen2.5-omni-7b"]


def test_health_reports_degraded_dependency(api_client, monkeypatch):
    monkeypatch.setattr(
        "dreamcut_analyzer.api.routes.collect_dependency_status",
        lambda settings, celery: {"redis": "ok", "celery": "no-worker"},
    )

    response = api_client.get("/monitor/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["dependencies"]["celery"] == "no-worker"


def test_analyzer_routes_require_credentials(test_settings):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[settings_dependency] = lambda: test_settings
    client = TestClient(app)

    response = client.post("/dreamcut/unified-analyzer", json={"query": QUERY})

    assert response.status_code == 401
    assert response.json()["detail"]["error_code"] == "ERR_AUTH_MISSING"
    assert client.get("/dreamcut/unified-analyzer").status_code == 200


def test_app_factory_mounts_router(monkeypatch, test_settings):
    from dreamcut_analyzer import app as app_module

    monkeypatch.setattr(app_module, "get_settings", lambda: test_settings)

    client = TestClient(app_module.create_app())

    assert client.get("/healthz").json() == {"status": "ok"}
    echoed = client.get("/healthz", headers={"X-Request-ID": "req-abc"})
    assert echoed.headers["X-Request-ID"] == "req-abc"
    assert client.get("/healthz").headers["X-Request-ID"].startswith("req_")
    assert client.get("/api/v1/dreamcut/realtime-analyzer").status_code == 200
