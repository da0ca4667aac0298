"""Redis-backed sliding-window rate limiting for API routes."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from textly.infra.redis import redis_client
from textly.obs import metrics as obs_metrics
from textly.settings import settings

logger = logging.getLogger(__name__)

IMPROVE = "improve"
USERS_META = "users_meta"


class RateLimitExceeded(Exception):
	"""Raised when the rate limit has been hit."""

	def __init__(self, retry_after: int) -> None:
		super().__init__(f"rate limit exceeded, retry after {retry_after}s")
		self.retry_after = retry_after


class RateLimiterMisconfigured(Exception):
	"""Raised in production when no limiter can be built for a route."""


@dataclass(slots=True, frozen=True)
class RateLimitResult:
	allowed: bool
	retry_after: int = 0


class SlidingWindowLimiter:
	"""Sliding window over a sorted set of request timestamps per key."""

	def __init__(self, client, namespace: str, *, limit: int, window_seconds: int, prefix: str) -> None:
		self._client = client
		self.namespace = namespace
		self.limit = limit
		self.window_seconds = max(1, int(window_seconds))
		self._prefix = prefix

	def key(self, user_id: str, ip_hash: str) -> str:
		return f"{self._prefix}:rl:{self.namespace}:{user_id}:{ip_hash}"

	async def hit(self, user_id: str, ip_hash: str, *, now: Optional[float] = None) -> RateLimitResult:
		"""Record one request and report whether it fits the window budget."""
		if self.limit <= 0:
			return RateLimitResult(allowed=False, retry_after=self.window_seconds)
		now = now if now is not None else time.time()
		key = self.key(user_id, ip_hash)
		member = f"{now:.6f}:{uuid4().hex[:8]}"
		async with self._client.pipeline(transaction=True) as pipe:
			pipe.zremrangebyscore(key, "-inf", now - self.window_seconds)
			pipe.zadd(key, {member: now})
			pipe.zcard(key)
			pipe.zrange(key, 0, 0, withscores=True)
			pipe.expire(key, self.window_seconds)
			_, _, count, oldest, _ = await pipe.execute()
		if int(count) <= self.limit:
			return RateLimitResult(allowed=True)
		# over budget: the rejected hit must not occupy a slot
		await self._client.zrem(key, member)
		oldest_score = float(oldest[0][1]) if oldest else now
		retry_after = max(1, math.ceil(oldest_score + self.window_seconds - now))
		obs_metrics.inc_rate_limit_reject(self.namespace)
		return RateLimitResult(allowed=False, retry_after=retry_after)


_LIMITS = {
	IMPROVE: lambda: settings.rate_limit_improve_max,
	USERS_META: lambda: settings.rate_limit_meta_max,
}


def get_limiter(namespace: str) -> Optional[SlidingWindowLimiter]:
	"""Build the limiter for a route, or None when limiting is unavailable."""
	if not settings.rate_limit_enabled or not redis_client.configured:
		return None
	limit_for = _LIMITS.get(namespace)
	if limit_for is None:
		raise KeyError(f"unknown rate limit namespace: {namespace}")
	return SlidingWindowLimiter(
		redis_client,
		namespace,
		limit=limit_for(),
		window_seconds=settings.rate_limit_window_seconds,
		prefix=settings.rate_limit_prefix,
	)


async def check_request_limit(namespace: str, user_id: str, ip_hash: str) -> None:
	"""Enforce the route budget.

	Raises RateLimitExceeded when over budget, RateLimiterMisconfigured in
	production when no limiter is available; elsewhere a missing limiter allows.
	"""
	limiter = get_limiter(namespace)
	if limiter is None:
		if settings.is_prod():
			raise RateLimiterMisconfigured(namespace)
		logger.debug("rate limiter unavailable for %s, allowing", namespace)
		return
	result = await limiter.hit(user_id, ip_hash)
	if not result.allowed:
		raise RateLimitExceeded(result.retry_after)
