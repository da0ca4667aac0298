"""Redis connection management.

Provides a stable proxy object so imports like `from textly.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from textly.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client.

	A proxy without a client reports ``configured == False`` so callers such as the
	local cache and the rate limiter can degrade instead of failing.
	"""

	def __init__(self, client: Optional[redis.Redis]):
		self._client: Optional[redis.Redis] = client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	@property
	def configured(self) -> bool:
		return self._client is not None

	def __getattr__(self, item):
		if self._client is None:
			raise AttributeError(f"redis client not configured ({item})")
		return getattr(self._client, item)


def _build_client() -> Optional[redis.Redis]:
	if not settings.redis_url:
		return None
	return redis.from_url(settings.redis_url, decode_responses=True)


redis_client: RedisProxy = RedisProxy(_build_client())


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)
