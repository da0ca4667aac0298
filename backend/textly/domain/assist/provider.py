"""Language model providers behind the text-transform endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from textly.domain.assist.exceptions import AssistProviderError
from textly.settings import settings

logger = logging.getLogger(__name__)


class TextModel(Protocol):
    """Interface for prompt-in, text-out model calls."""

    async def generate(self, prompt: str) -> str:
        ...


@dataclass
class GeminiTextModel(TextModel):
    """Calls the Gemini ``generateContent`` REST API."""

    http: httpx.AsyncClient
    api_key: str
    model: str = "gemini-2.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 20.0

    @property
    def name(self) -> str:
        return self.model

    async def generate(self, prompt: str) -> str:
        url = f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent"
        try:
            response = await self.http.post(
                url,
                params={"key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AssistProviderError(f"gemini request failed: {exc.__class__.__name__}") from exc
        return _extract_text(body)


def _extract_text(body: object) -> str:
    if not isinstance(body, dict):
        raise AssistProviderError("gemini response is not an object")
    candidates = body.get("candidates") or []
    if not candidates:
        raise AssistProviderError("gemini returned no candidates")
    parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
    return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))


def build_text_model(http: httpx.AsyncClient) -> Optional[GeminiTextModel]:
    """The configured model, or None when no API key is set."""
    if not settings.gemini_api_key:
        return None
    return GeminiTextModel(
        http=http,
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.gemini_timeout_seconds,
    )
