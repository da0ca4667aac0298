"""HTTP client a session uses to call ``POST /api/improve``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

from textly.domain.assist.exceptions import AssistError, AssistProviderError, AssistRateLimited, AssistUnavailable
from textly.domain.assist.models import AssistAction

IMPROVE_PATH = "/api/improve"


class AssistClient(Protocol):
    async def transform(self, action: AssistAction, text: str) -> str:
        ...


@dataclass
class HttpAssistClient(AssistClient):
    http: httpx.AsyncClient
    path: str = IMPROVE_PATH

    async def transform(self, action: AssistAction, text: str) -> str:
        try:
            response = await self.http.post(self.path, json={"action": action, "text": text})
        except httpx.HTTPError as exc:
            raise AssistProviderError(f"assist request failed: {exc.__class__.__name__}") from exc
        if response.status_code == 403:
            raise AssistUnavailable()
        if response.status_code == 429:
            try:
                retry_after = float(response.headers.get("Retry-After", "60"))
            except ValueError:
                retry_after = 60.0
            raise AssistRateLimited(retry_after)
        if response.status_code == 400:
            raise AssistError("invalid_request")
        if response.status_code != 200:
            raise AssistProviderError(f"assist endpoint returned {response.status_code}")
        try:
            return str(response.json().get("outputText") or "").strip()
        except (ValueError, AttributeError) as exc:
            raise AssistProviderError("unreadable assist response") from exc
