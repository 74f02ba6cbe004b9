"""Error code registry and helpers for consistent API responses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import HTTPException, status


@dataclass(frozen=True)
class ErrorCodeSpec:
    code: str
    zh: str
    en: str
    status: int
    http_status: int


class ErrorRegistry:
    def __init__(self) -> None:
        self._codes: Dict[str, ErrorCodeSpec] = {}

    def register(self, spec: ErrorCodeSpec) -> None:
        if spec.code in self._codes:
            raise ValueError(f"Error code {spec.code} already registered")
        self._codes[spec.code] = spec

    def get(self, code: str) -> ErrorCodeSpec:
        if code not in self._codes:
            raise KeyError(f"Unknown error code: {code}")
        return self._codes[code]

    def to_dict(self) -> Dict[str, ErrorCodeSpec]:
        return dict(self._codes)


ERRORS = ErrorRegistry()


def register_default_errors() -> None:
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_AUTH_MISSING",
            zh="认证信息缺失",
            en="Missing authentication information",
            status=4010,
            http_status=status.HTTP_401_UNAUTHORIZED,
        )
    )
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_AUTH_INVALID",
            zh="认证失败，appid或key错误",
            en="Authentication failed: invalid appid or key",
            status=4011,
            http_status=status.HTTP_401_UNAUTHORIZED,
        )
    )
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_INVALID_REQUEST",
            zh="请求格式无效",
            en="Invalid request format",
            status=4001,
            http_status=status.HTTP_400_BAD_REQUEST,
        )
    )
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_QUERY_NOT_FOUND",
            zh="分析记录不存在",
            en="Analysis record not found",
            status=4041,
            http_status=status.HTTP_404_NOT_FOUND,
        )
    )
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_BRIEF_NOT_FOUND",
            zh="分析简报不存在",
            en="Brief not found",
            status=4042,
            http_status=status.HTTP_404_NOT_FOUND,
        )
    )
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_PIPELINE_FAILED",
            zh="分析流程执行失败",
            en="Analysis pipeline failed",
            status=5002,
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    )
    ERRORS.register(
        ErrorCodeSpec(
            code="ERR_TASK_FAILED",
            zh="任务提交失败",
            en="Background analysis task could not be scheduled",
            status=5001,
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    )


register_default_errors()


def raise_error(code: str, *, detail: Optional[str] = None) -> None:
    spec = ERRORS.get(code)
    raise HTTPException(
        status_code=spec.http_status,
        detail={
            "status": "failure",
            "error_code": spec.code,
            "error_status": spec.status,
            "message": detail or spec.en,
            "zh_message": spec.zh,
        },
    )


class ProviderError(RuntimeError):
    """Raised by model adapters when a hosted provider call fails."""

    def __init__(self, provider: str, message: str, *, model: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.model = model


class ProviderUnavailable(ProviderError):
    """The provider could not be reached at all (connection refused, DNS, timeout)."""
