"""Small helpers shared across pipeline steps."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Iterable, List
from uuid import uuid4


def generate_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:7]}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def mean(values: Iterable[float], default: float = 0.0) -> float:
    items: List[float] = [float(v) for v in values]
    return sum(items) / len(items) if items else default


def contains_any(text: str, words: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in words)


def unique(items: Iterable[Any]) -> List[Any]:
    seen: List[Any] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen
