"""Uniform success/failure container returned by every pipeline step."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Result:
    success: bool
    result: Any = None
    error: Optional[str] = None
    model_used: Optional[str] = None

    @classmethod
    def ok(cls, value: Any, *, model_used: Optional[str] = None) -> "Result":
        return cls(success=True, result=value, model_used=model_used)

    @classmethod
    def fail(cls, error: str) -> "Result":
        return cls(success=False, error=error or "Unknown error occurred")

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.success:
            payload["result"] = self.result
        else:
            payload["error"] = self.error
        if self.model_used:
            payload["model_used"] = self.model_used
        return payload
