"""HTTP adapters for the hosted text and vision model providers.

Both clients speak the OpenAI-compatible wire format and are constructed from
an explicit settings section, so tests can pass fakes with the same surface.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from .config import TextModelSettings, VisionModelSettings
from .errors import ProviderError, ProviderUnavailable
from .monitoring import record_provider_call

logger = logging.getLogger(__name__)


def _chat_endpoint(api_base: str) -> str:
    base = api_base.rstrip("/")
    if base.endswith("/chat/completions"):
        return base
    return f"{base}/chat/completions"


def _extract_content(data: Dict[str, Any], provider: str, model: str) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ProviderError(provider, f"Malformed response from {model}", model=model) from exc
    if isinstance(content, list):
        content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
    if not content or not str(content).strip():
        raise ProviderError(provider, f"Empty response from {model}", model=model)
    return str(content)


def _post_json(
    provider: str,
    url: str,
    payload: Dict[str, Any],
    *,
    api_key: str,
    timeout: float,
    model: str,
) -> Dict[str, Any]:
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
    try:
        resp = requests.post(url, json=payload, timeout=timeout, headers=headers)
        resp.raise_for_status()
        data = resp.json()
    except (requests.ConnectionError, requests.Timeout) as exc:
        record_provider_call(provider, "unavailable")
        raise ProviderUnavailable(provider, f"{provider} unreachable: {exc}", model=model) from exc
    except requests.RequestException as exc:
        record_provider_call(provider, "error")
        raise ProviderError(provider, f"{model} request failed: {exc}", model=model) from exc
    except ValueError as exc:
        record_provider_call(provider, "error")
        raise ProviderError(provider, f"{model} returned non-JSON body", model=model) from exc
    record_provider_call(provider, "success")
    return data


class TextModelClient:
    provider = "text"

    def __init__(self, settings: TextModelSettings) -> None:
        self.settings = settings

    def resolve_chain(self, preference: Optional[str] = None) -> List[str]:
        chain = list(self.settings.models)
        if not preference or preference == "auto":
            return chain
        preferred = self.settings.model_aliases.get(preference, preference)
        return [preferred] + [model for model in chain if model != preferred]

    def chat(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: str,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": self.settings.temperature if temperature is None else temperature,
            "top_p": self.settings.top_p if top_p is None else top_p,
            "max_tokens": max_tokens or self.settings.max_tokens,
        }
        data = _post_json(
            self.provider,
            _chat_endpoint(self.settings.api_base),
            payload,
            api_key=self.settings.api_key,
            timeout=self.settings.request_timeout_sec,
            model=model,
        )
        return _extract_content(data, self.provider, model)


class VisionModelClient:
    provider = "vision"

    def __init__(self, settings: VisionModelSettings) -> None:
        self.settings = settings

    def models_for(self, media_type: str) -> List[str]:
        if media_type == "image":
            return list(self.settings.image_models)
        if media_type == "video":
            return list(self.settings.video_models)
        if media_type == "audio":
            return list(self.settings.audio_models)
        raise ValueError(f"Unsupported asset type: {media_type}")

    def describe(self, url: str, media_type: str, prompt: str, *, model: str) -> str:
        content_key = "video_url" if media_type == "video" else "image_url"
        payload = {
            "model": model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": content_key, content_key: {"url": url}},
                    ],
                }
            ],
            "max_tokens": self.settings.max_tokens,
            "temperature": 0.1,
        }
        data = _post_json(
            self.provider,
            _chat_endpoint(self.settings.api_base),
            payload,
            api_key=self.settings.api_key,
            timeout=self.settings.request_timeout_sec,
            model=model,
        )
        return _extract_content(data, self.provider, model)

    def transcribe(self, url: str, *, model: str) -> str:
        endpoint = f"{self.settings.api_base.rstrip('/')}/audio/transcriptions"
        data = _post_json(
            self.provider,
            endpoint,
            {"model": model, "url": url},
            api_key=self.settings.api_key,
            timeout=self.settings.request_timeout_sec,
            model=model,
        )
        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ProviderError(self.provider, f"Malformed transcription from {model}", model=model)
        return text
