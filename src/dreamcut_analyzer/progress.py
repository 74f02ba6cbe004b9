"""Progress events for realtime analysis runs.

Events are published fire-and-forget on ``{channel_prefix}:{query_id}`` and
mirrored into the persisted query record, so a client that missed the
channel can still read the terminal state.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import RedisError

from .store import QUERIES, RecordStore
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

STAGES = ("init", "analyzing", "merging", "complete", "failed")
ANALYZING_START = 15
ANALYZING_END = 70


@dataclass
class ProgressEvent:
    query_id: str
    stage: str
    progress: int
    message: str
    asset: Optional[Dict[str, Any]] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        if self.stage not in STAGES:
            raise ValueError(f"Unknown progress stage: {self.stage}")
        self.progress = max(0, min(100, int(self.progress)))

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        if payload["asset"] is None:
            payload.pop("asset")
        if not payload["data"]:
            payload.pop("data")
        return payload

    @property
    def broadcast_name(self) -> str:
        return "asset_progress" if self.asset is not None else "progress_update"

    def message_payload(self) -> Dict[str, Any]:
        return {
            "query_id": self.query_id,
            "stage": self.stage,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class ProgressBroadcaster:
    def publish(self, query_id: str, event: ProgressEvent) -> None:
        raise NotImplementedError


class InMemoryProgressBroadcaster(ProgressBroadcaster):
    def __init__(self) -> None:
        self.events: List[ProgressEvent] = []
        self._lock = threading.Lock()

    def publish(self, query_id: str, event: ProgressEvent) -> None:
        with self._lock:
            self.events.append(event)

    def stages(self) -> List[str]:
        return [event.stage for event in self.events]


class RedisProgressBroadcaster(ProgressBroadcaster):
    def __init__(self, client: redis.Redis, *, channel_prefix: str = "dreamcut_queries") -> None:
        self._client = client
        self._prefix = channel_prefix

    def channel(self, query_id: str) -> str:
        return f"{self._prefix}:{query_id}"

    def _send(self, query_id: str, name: str, payload: Dict[str, Any]) -> None:
        try:
            self._client.publish(self.channel(query_id), json.dumps({"event": name, "payload": payload}))
        except RedisError as exc:
            logger.warning("Progress publish of %s failed for %s: %s", name, query_id, exc)

    def publish(self, query_id: str, event: ProgressEvent) -> None:
        # director message first, then the stage or per-asset update
        self._send(query_id, "new_message", event.message_payload())
        self._send(query_id, event.broadcast_name, event.to_dict())


class ProgressTracker:
    """Emits the stage events of one analysis run and mirrors them into its record."""

    def __init__(
        self,
        query_id: str,
        user_id: str,
        broadcaster: ProgressBroadcaster,
        store: Optional[RecordStore] = None,
    ) -> None:
        self.query_id = query_id
        self.user_id = user_id
        self._broadcaster = broadcaster
        self._store = store
        self._total_assets = 0
        self._assets_started = 0
        self._lock = threading.Lock()

    def _emit(self, event: ProgressEvent, *, status: Optional[str] = None, **fields: Any) -> None:
        self._broadcaster.publish(self.query_id, event)
        if self._store is None:
            return
        # asset workers emit concurrently; the message list is read-modify-write
        with self._lock:
            record = self._store.get(QUERIES, self.query_id)
            if record is None:
                return
            messages = list(record.get("messages") or [])
            messages.append({"stage": event.stage, "message": event.message, "timestamp": event.timestamp})
            update: Dict[str, Any] = {"stage": event.stage, "progress": event.progress, "messages": messages}
            if status:
                update["status"] = status
            update.update(fields)
            self._store.update(QUERIES, self.query_id, update)

    def init(self, total_assets: int) -> None:
        self._total_assets = total_assets
        self._emit(
            ProgressEvent(self.query_id, "init", 0, f"Starting analysis of request with {total_assets} assets"),
            status="processing",
        )

    def asset_started(self, asset_id: str, media_type: str) -> None:
        with self._lock:
            self._assets_started += 1
            index = self._assets_started
        total = max(self._total_assets, index)
        span = ANALYZING_END - ANALYZING_START
        progress = ANALYZING_START + round(span * (index - 1) / max(total - 1, 1)) if total > 1 else ANALYZING_START
        self._emit(
            ProgressEvent(
                self.query_id,
                "analyzing",
                progress,
                f"Analyzing {media_type} asset {index} of {total}",
                asset={"id": asset_id, "type": media_type, "index": index, "total": total},
            )
        )

    def merging(self) -> None:
        self._emit(ProgressEvent(self.query_id, "merging", 80, "Combining request and asset insights"))

    def complete(self, analysis: Dict[str, Any]) -> None:
        creative = analysis.get("creative_options", {})
        suggestions = [item.get("title") for item in creative.get("option_catalog", []) if item.get("title")]
        conflicts = analysis.get("global_understanding", {}).get("conflict_resolutions", [])
        self._emit(
            ProgressEvent(
                self.query_id,
                "complete",
                100,
                "Analysis complete",
                data={"creative_suggestions": suggestions, "conflicts": conflicts},
            )
        )

    def failed(self, stage: str, error: str) -> None:
        self._emit(
            ProgressEvent(self.query_id, "failed", 100, f"{stage} failed: {error}", data={"failed_stage": stage}),
            status="failed",
            error=error,
        )
