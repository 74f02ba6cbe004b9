"""Centralized settings and configuration loading utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TextModelSettings(BaseModel):
    api_base: str = "https://api.together.xyz/v1"
    api_key: str = ""
    models: list[str] = Field(
        default_factory=lambda: [
            "meta-llama/Meta-Llama-3.1-405B-Instruct-Turbo",
            "meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo",
            "Qwen/Qwen2.5-72B-Instruct-Turbo",
            "google/gemma-2-27b-it",
            "mistralai/Mistral-7B-Instruct-v0.3",
        ]
    )
    model_aliases: Dict[str, str] = Field(
        default_factory=lambda: {
            "llama31_405b": "meta-llama/Meta-Llama-3.1-405B-Instruct-Turbo",
            "llama31_70b": "meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo",
            "qwen25_72b": "Qwen/Qwen2.5-72B-Instruct-Turbo",
            "gemma2_27b": "google/gemma-2-27b-it",
            "mistral_7b": "mistralai/Mistral-7B-Instruct-v0.3",
        }
    )
    request_timeout_sec: int = Field(60, ge=1)
    temperature: float = 0.1
    top_p: float = 0.9
    max_tokens: int = 2000


class VisionModelSettings(BaseModel):
    api_base: str = "https://api.replicate.com/v1/openai"
    api_key: str = ""
    image_models: list[str] = Field(default_factory=lambda: ["llava-13b", "blip", "moondream2"])
    video_models: list[str] = Field(default_factory=lambda: ["apollo-7b", "qwen2.5-omni-7b"])
    audio_models: list[str] = Field(default_factory=lambda: ["whisper-large-v3"])
    request_timeout_sec: int = Field(120, ge=1)
    max_tokens: int = 1024


class PipelineSettings(BaseModel):
    max_concurrent_assets: int = Field(5, ge=1)
    asset_timeout_sec: float = Field(120, gt=0)
    enable_ai_synthesis: bool = True
    pipeline_version: str = "2.0.0"


class RealtimeSettings(BaseModel):
    backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/2"
    channel_prefix: str = "dreamcut_queries"
    status_channel_prefix: str = "analysis"
    record_prefix: str = "dreamcut"
    record_ttl_sec: int = 7 * 24 * 3600


class LoggingSettings(BaseModel):
    level: str = "INFO"
    log_dir: str = "./logs"
    max_log_file_size_mb: int = 100
    backup_count: int = 7
    request_id_header: str = "X-Request-ID"


class MonitoringSettings(BaseModel):
    health_api: str = "/api/v1/monitor/health"
    prometheus_port: int = 9091


class APIAuthSettings(BaseModel):
    required: bool = True
    app_secrets_path: str = "./secrets/appkeys.json"
    header_appid: str = "X-DreamCut-Appid"
    header_key: str = "X-DreamCut-Key"


class CeleryQueueSettings(BaseModel):
    broker_url: str = "redis://localhost:6379/0"
    result_backend: str = "redis://localhost:6379/1"
    default_queue: str = "dreamcut-analysis"
    task_time_limit_sec: int = 900
    prefetch_multiplier: int = 1
    task_always_eager: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DREAMCUT_", env_nested_delimiter="__", extra="allow")

    service_name: str = "dreamcut-analyzer"
    environment: str = "dev"
    api_version: str = "v1"
    base_url: str = "/api/v1"

    text_model: TextModelSettings = TextModelSettings()
    vision_model: VisionModelSettings = VisionModelSettings()
    pipeline: PipelineSettings = PipelineSettings()
    realtime: RealtimeSettings = RealtimeSettings()
    logging: LoggingSettings = LoggingSettings()
    monitoring: MonitoringSettings = MonitoringSettings()
    api_auth: APIAuthSettings = APIAuthSettings()
    celery: CeleryQueueSettings = CeleryQueueSettings()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"prod", "production"}

    @staticmethod
    def load_yaml_config_file(file_path: str | Path | None) -> Dict[str, Any]:
        if not file_path:
            return {}
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        import yaml  # lazy import for optional dependency

        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError("Configuration YAML must produce a mapping")
        return data

    @classmethod
    def from_source(cls, *, config_file: str | None = None, **overrides: Any) -> "Settings":
        base_data = cls.load_yaml_config_file(config_file)
        base_data.update(overrides)
        return cls(**base_data)


@lru_cache
def get_settings() -> Settings:
    cfg_file = os.getenv("DREAMCUT_CONFIG_FILE")
    if cfg_file:
        return Settings.from_source(config_file=cfg_file)

    default_path = Path.cwd() / "config" / "settings.yaml"
    if default_path.exists():
        return Settings.from_source(config_file=str(default_path))

    return Settings()


def reload_settings() -> None:
    get_settings.cache_clear()


def settings_dependency() -> Settings:
    return get_settings()
