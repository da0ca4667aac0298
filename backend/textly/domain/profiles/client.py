"""HTTP client for the authorization-gated profile metadata batch endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Protocol
from uuid import UUID

import httpx

from textly.domain.profiles.avatar import normalize_avatar_url
from textly.domain.profiles.exceptions import MetadataRateLimited
from textly.domain.profiles.models import FALLBACK_USERNAME, UserMeta
from textly.domain.profiles.schemas import MAX_META_IDS
from textly.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

META_PATH = "/api/users/meta"
DEFAULT_RETRY_AFTER = 60.0


class MetadataClient(Protocol):
    """Interface for batch metadata lookups."""

    async def fetch(self, ids: Iterable[str]) -> Dict[str, UserMeta]:
        ...


def _valid_ids(ids: Iterable[str]) -> List[str]:
    valid: List[str] = []
    for raw in dict.fromkeys(ids):
        try:
            UUID(str(raw))
        except (TypeError, ValueError):
            continue
        valid.append(str(raw))
    return valid


def _retry_after(response: httpx.Response) -> float:
    try:
        return max(1.0, float(response.headers.get("Retry-After", DEFAULT_RETRY_AFTER)))
    except ValueError:
        return DEFAULT_RETRY_AFTER


@dataclass
class HttpMetadataClient(MetadataClient):
    """Calls ``POST /api/users/meta`` in chunks of at most 50 ids.

    Non-UUID ids are dropped before calling. A 429 raises MetadataRateLimited;
    any other failure is logged and that chunk contributes no metadata.
    """

    http: httpx.AsyncClient
    path: str = META_PATH

    async def fetch(self, ids: Iterable[str]) -> Dict[str, UserMeta]:
        wanted = _valid_ids(ids)
        result: Dict[str, UserMeta] = {}
        for start in range(0, len(wanted), MAX_META_IDS):
            chunk = wanted[start:start + MAX_META_IDS]
            result.update(await self._fetch_chunk(chunk))
        return result

    async def _fetch_chunk(self, ids: List[str]) -> Dict[str, UserMeta]:
        try:
            response = await self.http.post(self.path, json={"ids": ids})
        except httpx.HTTPError as exc:
            obs_metrics.inc_metadata_lookup("error")
            logger.warning("metadata lookup failed: %s", exc)
            return {}
        if response.status_code == 429:
            obs_metrics.inc_metadata_lookup("rate_limited")
            raise MetadataRateLimited(_retry_after(response))
        if response.status_code != 200:
            obs_metrics.inc_metadata_lookup("error")
            logger.warning("metadata lookup returned %s", response.status_code)
            return {}
        try:
            users = response.json().get("users") or []
        except (ValueError, AttributeError):
            obs_metrics.inc_metadata_lookup("error")
            logger.warning("metadata lookup returned an unreadable body")
            return {}
        obs_metrics.inc_metadata_lookup("ok")
        result: Dict[str, UserMeta] = {}
        for user in users:
            if not isinstance(user, dict) or not user.get("id"):
                continue
            result[str(user["id"])] = UserMeta(
                id=str(user["id"]),
                email=user.get("email"),
                nombre=str(user.get("nombre") or FALLBACK_USERNAME),
                avatar_url=normalize_avatar_url(user.get("avatarUrl")),
            )
        return result
