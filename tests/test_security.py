"""Tests for caller authentication and the request logging context."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import structlog
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from dreamcut_analyzer.config import settings_dependency
from dreamcut_analyzer.logging import RequestContextFilter, bind_request_context
from dreamcut_analyzer.security import AppKeyValidator, authenticate_request


def _build_protected_app(settings) -> FastAPI:
    app = FastAPI()

    @app.get("/protected", dependencies=[Depends(authenticate_request)])
    def protected_endpoint() -> dict[str, str]:  # pragma: no cover - trivial
        return {"status": "ok"}

    app.dependency_overrides[settings_dependency] = lambda: settings
    return app


def test_appkeyvalidator_reloads_file_when_changed(tmp_path):
    secrets = tmp_path / "appkeys.json"
    secrets.write_text(json.dumps({"demo": "secret"}), encoding="utf-8")

    validator = AppKeyValidator(str(secrets))
    assert validator.is_valid("demo", "secret")
    assert not validator.is_valid("demo", "wrong")

    secrets.write_text(json.dumps({"demo": "new-secret"}), encoding="utf-8")
    current = secrets.stat().st_mtime
    os.utime(secrets, (current + 1, current + 1))
    assert validator.is_valid("demo", "new-secret")


def test_appkeyvalidator_missing_file_rejects_everything(tmp_path):
    validator = AppKeyValidator(str(tmp_path / "absent.json"))

    assert not validator.is_valid("demo", "secret")


def test_authenticate_request_accepts_valid_headers(test_settings, noop_validator):
    app = _build_protected_app(test_settings)
    client = TestClient(app)

    headers = {
        test_settings.api_auth.header_appid: "test-app",
        test_settings.api_auth.header_key: "secret-key",
    }

    response = client.get("/protected", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert noop_validator.checked == [("test-app", "secret-key")]


def test_authenticate_request_ignores_query_params(test_settings, noop_validator):
    app = _build_protected_app(test_settings)
    client = TestClient(app)

    response = client.get("/protected", params={"appid": "query-app", "key": "query-secret"})

    assert response.status_code == 401
    assert response.json()["detail"]["error_code"] == "ERR_AUTH_MISSING"
    assert noop_validator.checked == []


def test_authenticate_request_skipped_when_not_required(test_settings, noop_validator):
    settings = test_settings.model_copy(
        update={"api_auth": test_settings.api_auth.model_copy(update={"required": False})}
    )
    client = TestClient(_build_protected_app(settings))

    response = client.get("/protected")

    assert response.status_code == 200
    assert noop_validator.checked == []


def test_authenticate_request_rejects_missing_credentials(test_settings, noop_validator):
    app = _build_protected_app(test_settings)
    client = TestClient(app)

    headers = {test_settings.api_auth.header_appid: "test-app"}
    response = client.get("/protected", headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"]["error_code"] == "ERR_AUTH_MISSING"
    assert noop_validator.checked == []


def test_authenticate_request_rejects_invalid_credentials(test_settings, monkeypatch):
    def _fake_validator(path: str) -> Any:
        class _Validator:
            def __init__(self) -> None:
                self.path = path

            def is_valid(self, appid: str, key: str) -> bool:
                return False

        return _Validator()

    monkeypatch.setattr("dreamcut_analyzer.security.get_validator", _fake_validator)
    app = _build_protected_app(test_settings)
    client = TestClient(app)

    headers = {
        test_settings.api_auth.header_appid: "test-app",
        test_settings.api_auth.header_key: "secret-key",
    }
    response = client.get("/protected", headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"]["error_code"] == "ERR_AUTH_INVALID"


def test_rejected_request_logs_expected_header_names(test_settings, noop_validator, caplog):
    client = TestClient(_build_protected_app(test_settings))

    with caplog.at_level(logging.WARNING, logger="dreamcut_analyzer.security"):
        response = client.get("/protected")

    assert response.status_code == 401
    assert "GET /protected" in caplog.text
    assert "X-DreamCut-Appid and X-DreamCut-Key headers are required" in caplog.text


def test_accepted_appid_is_bound_into_log_context(test_settings, noop_validator):
    app = FastAPI()

    @app.get("/context", dependencies=[Depends(authenticate_request)])
    async def context_endpoint() -> dict[str, Any]:
        return structlog.contextvars.get_contextvars()

    app.dependency_overrides[settings_dependency] = lambda: test_settings
    headers = {
        test_settings.api_auth.header_appid: "test-app",
        test_settings.api_auth.header_key: "secret-key",
    }

    response = TestClient(app).get("/context", headers=headers)

    assert response.status_code == 200
    assert response.json()["appid"] == "test-app"


def test_request_context_filter_stamps_records():
    record = logging.LogRecord("dreamcut_analyzer", logging.INFO, __file__, 1, "hello", None, None)

    bind_request_context("req_1", appid="studio")
    try:
        RequestContextFilter().filter(record)
    finally:
        structlog.contextvars.clear_contextvars()

    assert record.request_id == "req_1"
    assert record.appid == "studio"

    RequestContextFilter().filter(record)
    assert record.request_id == "-"
