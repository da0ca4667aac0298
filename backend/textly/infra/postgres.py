"""AsyncPG pool management for the backend."""

from __future__ import annotations

from typing import Optional

import asyncpg

from textly.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


async def init_pool() -> Optional[asyncpg.pool.Pool]:
	"""Create the shared pool; returns None when no database URL is configured."""
	global _pool
	if _pool is None and settings.postgres_url:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> Optional[asyncpg.pool.Pool]:
	if _pool is None:
		await init_pool()
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None
