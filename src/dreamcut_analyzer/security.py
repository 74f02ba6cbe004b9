"""Caller authentication for the analyzer routes.

Callers identify themselves with an app id and key sent in the
``X-DreamCut-Appid``/``X-DreamCut-Key`` headers (names configurable under
``api_auth``). Keys live in a JSON object ``{appid: key}`` that is re-read
whenever its modification time changes, so keys can be rotated without a
restart. An accepted app id is bound into the structlog context so the
analysis logs of that request carry it.
"""

from __future__ import annotations

import hmac
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import structlog
from fastapi import Depends, Request

from .config import Settings, settings_dependency
from .errors import raise_error

logger = logging.getLogger(__name__)


class AppKeyValidator:
    def __init__(self, secrets_path: str) -> None:
        self._path = Path(secrets_path)
        self._keys: Dict[str, str] = {}
        self._mtime: Optional[float] = None
        self._refresh()

    def _refresh(self) -> None:
        if not self._path.exists():
            if self._mtime is not None:
                logger.warning("App key file %s disappeared; rejecting all callers", self._path)
            self._keys = {}
            self._mtime = None
            return
        mtime = self._path.stat().st_mtime
        if self._mtime == mtime:
            return
        with self._path.open("r", encoding="utf-8") as handle:
            data = json.load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError("App key file must contain a JSON object of {appid: key}")
        self._keys = {str(appid): str(key) for appid, key in data.items()}
        self._mtime = mtime
        logger.info("Loaded %d app keys from %s", len(self._keys), self._path)

    def is_valid(self, appid: str, key: str) -> bool:
        self._refresh()
        expected = self._keys.get(appid)
        return expected is not None and hmac.compare_digest(expected.encode(), key.encode())


@lru_cache
def get_validator(secrets_path: str) -> AppKeyValidator:
    return AppKeyValidator(secrets_path)


async def authenticate_request(request: Request, settings: Settings = Depends(settings_dependency)) -> None:
    auth_cfg = settings.api_auth
    if not auth_cfg.required:
        return

    appid = request.headers.get(auth_cfg.header_appid)
    key = request.headers.get(auth_cfg.header_key)
    if not appid or not key:
        logger.warning(
            "Rejected %s %s: %s and %s headers are required",
            request.method,
            request.url.path,
            auth_cfg.header_appid,
            auth_cfg.header_key,
        )
        raise_error("ERR_AUTH_MISSING")

    if not get_validator(auth_cfg.app_secrets_path).is_valid(appid, key):
        logger.warning("Rejected %s %s: unknown key for app %s", request.method, request.url.path, appid)
        raise_error("ERR_AUTH_INVALID")

    structlog.contextvars.bind_contextvars(appid=appid)
