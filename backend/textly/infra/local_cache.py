"""Durable per-user cache of JSON envelopes ``{timestamp, data}`` in Redis.

Every failure mode (no client, disabled, storage error, corrupt entry)
degrades to a cache miss; nothing here raises to the caller.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from redis.exceptions import RedisError

from textly.obs import metrics as obs_metrics
from textly.settings import settings

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (RedisError, OSError)


def _now_ms() -> int:
	return int(time.time() * 1000)


@dataclass(slots=True, frozen=True)
class CacheEntry:
	timestamp: int
	data: Any

	def age_ms(self, now_ms: int) -> int:
		return max(0, now_ms - self.timestamp)


class LocalCache:
	def __init__(
		self,
		client=None,
		*,
		prefix: Optional[str] = None,
		enabled: Optional[bool] = None,
		clock: Callable[[], int] = _now_ms,
	) -> None:
		self._client = client
		self._prefix = prefix if prefix is not None else settings.cache_prefix
		self._enabled = settings.cache_enabled if enabled is None else enabled
		self._clock = clock

	def now_ms(self) -> int:
		return self._clock()

	@property
	def available(self) -> bool:
		if not self._enabled or self._client is None:
			return False
		return getattr(self._client, "configured", True)

	def key(self, kind: str, user_id: str, room_id: Optional[str] = None) -> str:
		parts = [self._prefix, kind, user_id]
		if room_id:
			parts.append(room_id)
		return ":".join(parts)

	def user_prefix(self, user_id: str) -> str:
		return f"{self._prefix}:*:{user_id}"

	async def write(self, key: str, data: Any, *, ttl_seconds: Optional[int] = None) -> None:
		if not self.available:
			return
		try:
			raw = json.dumps({"timestamp": self._clock(), "data": data}, default=str)
			if ttl_seconds:
				await self._client.set(key, raw, ex=int(ttl_seconds))
			else:
				await self._client.set(key, raw)
		except (TypeError, ValueError) as exc:
			logger.warning("local cache write skipped for %s: %s", key, exc)
		except _STORAGE_ERRORS as exc:
			logger.warning("local cache write failed for %s: %s", key, exc)

	async def read_entry(self, key: str, max_age_ms: Optional[int] = None) -> Optional[CacheEntry]:
		"""Return the envelope, or None (evicting it) when corrupt or stale."""
		if not self.available:
			return None
		kind = key.split(":")[1] if key.count(":") >= 1 else key
		try:
			raw = await self._client.get(key)
		except _STORAGE_ERRORS as exc:
			logger.warning("local cache read failed for %s: %s", key, exc)
			obs_metrics.inc_cache_lookup(kind, "error")
			return None
		if raw is None:
			obs_metrics.inc_cache_lookup(kind, "miss")
			return None
		entry = self._parse(raw)
		if entry is None:
			obs_metrics.inc_cache_lookup(kind, "corrupt")
			await self.remove(key)
			return None
		if max_age_ms is not None and entry.age_ms(self._clock()) > max_age_ms:
			obs_metrics.inc_cache_lookup(kind, "stale")
			await self.remove(key)
			return None
		obs_metrics.inc_cache_lookup(kind, "hit")
		return entry

	async def read(self, key: str, max_age_ms: Optional[int] = None) -> Any:
		entry = await self.read_entry(key, max_age_ms)
		return entry.data if entry is not None else None

	async def remove(self, key: str) -> None:
		if not self.available:
			return
		try:
			await self._client.delete(key)
		except _STORAGE_ERRORS as exc:
			logger.warning("local cache remove failed for %s: %s", key, exc)

	async def remove_user(self, user_id: str) -> int:
		"""Drop every entry written for one user; returns the count removed."""
		return await self.remove_prefix(self.user_prefix(user_id))

	async def remove_prefix(self, pattern: str) -> int:
		if not self.available:
			return 0
		removed = 0
		try:
			match = pattern if pattern.endswith("*") else f"{pattern}*"
			async for key in self._client.scan_iter(match=match):
				removed += int(await self._client.delete(key))
		except _STORAGE_ERRORS as exc:
			logger.warning("local cache prefix removal failed for %s: %s", pattern, exc)
		return removed

	@staticmethod
	def _parse(raw: Any) -> Optional[CacheEntry]:
		try:
			envelope = json.loads(raw)
		except (TypeError, ValueError):
			return None
		if not isinstance(envelope, dict) or "data" not in envelope:
			return None
		timestamp = envelope.get("timestamp")
		if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
			return None
		return CacheEntry(timestamp=int(timestamp), data=envelope["data"])
