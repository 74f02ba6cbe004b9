"""Persistence for realtime query records and analysis briefs."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional

import redis

from .config import Settings
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

QUERIES = "queries"
BRIEFS = "briefs"


class RecordStore:
    """Key/value store of JSON records grouped by kind."""

    def put(self, kind: str, record_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def update(self, kind: str, record_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Merge ``fields`` into an existing record and return it.

        Returns ``None`` when the record does not exist. ``updated_at`` is
        refreshed on every update.
        """

        record = self.get(kind, record_id)
        if record is None:
            logger.warning("Cannot update missing %s record %s", kind, record_id)
            return None
        record.update(fields)
        record["updated_at"] = utc_now_iso()
        self.put(kind, record_id, record)
        return record


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def put(self, kind: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._records[f"{kind}:{record_id}"] = json.loads(json.dumps(data))

    def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(f"{kind}:{record_id}")
            return json.loads(json.dumps(record)) if record is not None else None

    def update(self, kind: str, record_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            key = f"{kind}:{record_id}"
            if key not in self._records:
                logger.warning("Cannot update missing %s record %s", kind, record_id)
                return None
            record = self._records[key]
            record.update(json.loads(json.dumps(fields)))
            record["updated_at"] = utc_now_iso()
            return json.loads(json.dumps(record))


class RedisRecordStore(RecordStore):
    def __init__(self, client: redis.Redis, *, prefix: str = "dreamcut", ttl_sec: int = 7 * 24 * 3600) -> None:
        self._client = client
        self._prefix = prefix
        self._ttl = ttl_sec

    def _key(self, kind: str, record_id: str) -> str:
        return f"{self._prefix}:{kind}:{record_id}"

    def put(self, kind: str, record_id: str, data: Dict[str, Any]) -> None:
        self._client.set(self._key(kind, record_id), json.dumps(data), ex=self._ttl)

    def get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        raw = self._client.get(self._key(kind, record_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)


_MEMORY_STORE = InMemoryRecordStore()


def _redis_client(settings: Settings) -> redis.Redis:
    return redis.Redis.from_url(settings.realtime.redis_url, socket_connect_timeout=2, socket_timeout=5)


def build_store(settings: Settings) -> RecordStore:
    if settings.realtime.backend == "memory":
        return _MEMORY_STORE
    return RedisRecordStore(
        _redis_client(settings),
        prefix=settings.realtime.record_prefix,
        ttl_sec=settings.realtime.record_ttl_sec,
    )


def build_broadcaster(settings: Settings):
    from .progress import InMemoryProgressBroadcaster, RedisProgressBroadcaster

    if settings.realtime.backend == "memory":
        return InMemoryProgressBroadcaster()
    return RedisProgressBroadcaster(_redis_client(settings), channel_prefix=settings.realtime.channel_prefix)


def new_query_record(
    query_id: str,
    *,
    user_id: str,
    user_prompt: str,
    intent: Optional[str],
    assets_count: int,
    created_at: str,
) -> Dict[str, Any]:
    return {
        "id": query_id,
        "user_id": user_id,
        "status": "queued",
        "stage": "queued",
        "progress": 0,
        "user_prompt": user_prompt,
        "intent": intent,
        "assets_count": assets_count,
        "messages": [],
        "payload": None,
        "error": None,
        "created_at": created_at,
        "updated_at": created_at,
    }
