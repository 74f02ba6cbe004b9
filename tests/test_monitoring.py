"""Unit tests for monitoring utilities and dependency checks."""

from __future__ import annotations

from types import SimpleNamespace

from redis.exceptions import RedisError

from dreamcut_analyzer.monitoring import (
    collect_dependency_status,
    ensure_metrics_server,
    record_asset_analysis,
    record_pipeline_run,
    record_provider_call,
    _check_celery_workers,
    _check_redis,
)


class _CounterStub:
    def __init__(self) -> None:
        self.calls: list[dict[str, str]] = []
        self.count = 0

    def labels(self, **kwargs):
        self.calls.append(kwargs)
        return self

    def inc(self) -> None:
        self.count += 1


class _GaugeStub:
    def __init__(self) -> None:
        self.values: list[float] = []

    def set(self, value: float) -> None:
        self.values.append(value)


def test_ensure_metrics_server_runs_once(monkeypatch):
    starts: list[int] = []
    monkeypatch.setattr("dreamcut_analyzer.monitoring._metrics_started", False)
    monkeypatch.setattr("dreamcut_analyzer.monitoring.start_http_server", lambda port: starts.append(port))

    ensure_metrics_server(9999)
    ensure_metrics_server(9999)

    assert starts == [9999]


def test_record_metrics_increment(monkeypatch):
    runs = _CounterStub()
    assets = _CounterStub()
    calls = _CounterStub()
    monkeypatch.setattr("dreamcut_analyzer.monitoring.PIPELINE_RUNS", runs)
    monkeypatch.setattr("dreamcut_analyzer.monitoring.ASSET_ANALYSES", assets)
    monkeypatch.setattr("dreamcut_analyzer.monitoring.PROVIDER_CALLS", calls)

    record_pipeline_run("asset_free", "success")
    record_asset_analysis("image", "failed")
    record_provider_call("vision", "unavailable")

    assert runs.calls == [{"mode": "asset_free", "status": "success"}]
    assert assets.calls == [{"asset_type": "image", "status": "failed"}]
    assert calls.calls == [{"provider": "vision", "status": "unavailable"}]
    assert runs.count == assets.count == calls.count == 1


def test_check_redis_success(monkeypatch, test_settings):
    urls: list[str] = []

    class _Client:
        def ping(self):
            return True

    def _from_url(url, **_kwargs):
        urls.append(url)
        return _Client()

    monkeypatch.setattr("dreamcut_analyzer.monitoring.redis.Redis.from_url", _from_url)

    assert _check_redis(test_settings) == "ok"
    assert urls == [test_settings.realtime.redis_url]


def test_check_redis_failure(monkeypatch, test_settings):
    def _raise(*_args, **_kwargs):
        raise RedisError("boom")

    monkeypatch.setattr("dreamcut_analyzer.monitoring.redis.Redis.from_url", _raise)

    assert _check_redis(test_settings) == "error:RedisError"


def test_check_celery_workers(monkeypatch):
    gauge = _GaugeStub()
    monkeypatch.setattr("dreamcut_analyzer.monitoring.CELERY_WORKERS", gauge)

    class _Control:
        def ping(self, timeout=1):
            return ["worker-1", "worker-2"]

    celery_app = SimpleNamespace(control=_Control())
    assert _check_celery_workers(celery_app) == "ok"
    assert gauge.values[-1] == 2


def test_check_celery_workers_without_replies(monkeypatch):
    gauge = _GaugeStub()
    monkeypatch.setattr("dreamcut_analyzer.monitoring.CELERY_WORKERS", gauge)

    celery_app = SimpleNamespace(control=SimpleNamespace(ping=lambda timeout=1: []))
    assert _check_celery_workers(celery_app) == "no-worker"
    assert gauge.values[-1] == 0


def test_collect_dependency_status_aggregates(monkeypatch, test_settings):
    monkeypatch.setattr("dreamcut_analyzer.monitoring._check_redis", lambda settings: "redis-ok")
    monkeypatch.setattr(
        "dreamcut_analyzer.monitoring._check_celery_workers",
        lambda celery: "celery-ok",
    )

    result = collect_dependency_status(test_settings, SimpleNamespace())
    assert result == {"redis": "redis-ok", "celery": "celery-ok"}
