"""Datastore access shared by the domain repositories.

Repositories talk to Postgres through asyncpg when a pool is configured and
fall back to an in-memory table set otherwise. Every write publishes a change
event on the feed, which stands in for the datastore's realtime push.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, Mapping, Optional

import asyncpg

from textly.infra.changefeed import ChangeFeed


class DatastoreError(Exception):
	"""Generic failure talking to the datastore."""

	reason: str = "datastore_error"

	def __init__(self, message: str | None = None) -> None:
		super().__init__(message or self.reason)


class ForeignKeyViolation(DatastoreError):
	reason = "foreign_key_violation"


class UniqueViolation(DatastoreError):
	reason = "unique_violation"


def translate_error(exc: BaseException) -> DatastoreError:
	"""Map asyncpg errors onto the datastore taxonomy."""
	if isinstance(exc, DatastoreError):
		return exc
	if isinstance(exc, asyncpg.exceptions.ForeignKeyViolationError):
		return ForeignKeyViolation(str(exc))
	if isinstance(exc, asyncpg.exceptions.UniqueViolationError):
		return UniqueViolation(str(exc))
	return DatastoreError(str(exc))


@dataclass
class MemoryTables:
	"""In-memory rows keyed by primary key, used when no pool is configured."""

	rooms: Dict[str, Dict[str, Any]] = field(default_factory=dict)
	messages: Dict[str, Dict[str, Any]] = field(default_factory=dict)
	friendships: Dict[str, Dict[str, Any]] = field(default_factory=dict)
	profiles: Dict[str, Dict[str, Any]] = field(default_factory=dict)
	auth_users: Dict[str, Dict[str, Any]] = field(default_factory=dict)
	user_settings: Dict[str, Dict[str, Any]] = field(default_factory=dict)
	lock: asyncio.Lock = field(default_factory=asyncio.Lock)
	_last_ts: Optional[datetime] = None

	def timestamp(self) -> datetime:
		"""Strictly increasing UTC timestamps so ordering is total."""
		now = datetime.now(timezone.utc)
		if self._last_ts is not None and now <= self._last_ts:
			now = self._last_ts + timedelta(microseconds=1)
		self._last_ts = now
		return now


class Repository:
	"""Base class wiring the pool-or-memory choice and the change feed."""

	topic: Optional[str] = None

	def __init__(self, pool: Optional[asyncpg.Pool], memory: MemoryTables, feed: ChangeFeed) -> None:
		self._pool = pool
		self._memory = memory
		self._feed = feed

	@property
	def uses_memory(self) -> bool:
		return self._pool is None

	@asynccontextmanager
	async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
		assert self._pool is not None
		try:
			async with self._pool.acquire() as conn:
				yield conn
		except (asyncpg.PostgresError, OSError) as exc:
			raise translate_error(exc) from exc

	async def _publish(self, event: str, row: Mapping[str, Any]) -> None:
		if self.topic is None:
			return
		await self._feed.publish(self.topic, event, row)


class Datastore:
	"""Bundle of the repositories a session or the API needs."""

	def __init__(self, pool: Optional[asyncpg.Pool] = None, feed: Optional[ChangeFeed] = None) -> None:
		from textly.domain.assist.repo import PreferencesRepository
		from textly.domain.chat.repo import MessageRepository
		from textly.domain.profiles.repo import ProfileRepository
		from textly.domain.rooms.repo import RoomRepository
		from textly.domain.social.repo import FriendshipRepository

		self.pool = pool
		self.feed = feed or ChangeFeed()
		self.memory = MemoryTables()
		self.rooms = RoomRepository(pool, self.memory, self.feed)
		self.messages = MessageRepository(pool, self.memory, self.feed)
		self.friendships = FriendshipRepository(pool, self.memory, self.feed)
		self.profiles = ProfileRepository(pool, self.memory, self.feed)
		self.preferences = PreferencesRepository(pool, self.memory, self.feed)


def parse_timestamp(value: Any) -> datetime:
	"""Accept datetimes from asyncpg and ISO strings from cached JSON."""
	if isinstance(value, datetime):
		return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
	if isinstance(value, str) and value:
		parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
		return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
	raise ValueError(f"invalid timestamp: {value!r}")


def optional_str(value: Any) -> Optional[str]:
	if value is None:
		return None
	return str(value)
