"""Room persistence: asyncpg when a pool is configured, memory tables otherwise."""

from __future__ import annotations

import secrets
from typing import Callable, List, Optional
from uuid import uuid4

from textly.domain.rooms.models import Room
from textly.infra.changefeed import DELETE, INSERT, UPDATE
from textly.infra.datastore import Repository, UniqueViolation

SHARE_CODE_DIGITS = 8
_CODE_ATTEMPTS = 5


def generate_share_code() -> str:
	return "".join(str(secrets.randbelow(10)) for _ in range(SHARE_CODE_DIGITS))


def normalize_share_code(code: str) -> str:
	return (code or "").strip().upper()


def _pair_key(a: str, b: Optional[str]) -> Optional[tuple[str, str]]:
	if b is None:
		return None
	return (a, b) if a <= b else (b, a)


class RoomRepository(Repository):
	topic = "rooms"

	def __init__(self, *args, code_factory: Callable[[], str] = generate_share_code, **kwargs) -> None:
		super().__init__(*args, **kwargs)
		self.code_factory = code_factory

	async def list_for_user(self, user_id: str) -> List[Room]:
		"""Rooms where the user is either participant, newest first."""
		if self.uses_memory:
			async with self._memory.lock:
				rows = [
					Room.from_record(row)
					for row in self._memory.rooms.values()
					if user_id in (row["participant_1"], row["participant_2"])
				]
			rows.sort(key=lambda room: room.created_at, reverse=True)
			return rows
		async with self._connection() as conn:
			records = await conn.fetch(
				"""
				SELECT id, room_name, participant_1, participant_2, share_code, created_at
				FROM rooms
				WHERE participant_1 = $1 OR participant_2 = $1
				ORDER BY created_at DESC
				""",
				user_id,
			)
		return [Room.from_record(record) for record in records]

	async def get(self, room_id: str) -> Optional[Room]:
		if self.uses_memory:
			async with self._memory.lock:
				row = self._memory.rooms.get(room_id)
				return Room.from_record(row) if row else None
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"SELECT id, room_name, participant_1, participant_2, share_code, created_at FROM rooms WHERE id = $1",
				room_id,
			)
		return Room.from_record(record) if record else None

	async def get_by_code(self, code: str) -> Optional[Room]:
		normalized = normalize_share_code(code)
		if not normalized:
			return None
		if self.uses_memory:
			async with self._memory.lock:
				for row in self._memory.rooms.values():
					if row["share_code"].upper() == normalized:
						return Room.from_record(row)
			return None
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				SELECT id, room_name, participant_1, participant_2, share_code, created_at
				FROM rooms
				WHERE upper(share_code) = $1
				""",
				normalized,
			)
		return Room.from_record(record) if record else None

	async def find_by_participants(self, user_a: str, user_b: str) -> Optional[Room]:
		"""Newest room shared by the two users, in either seat order."""
		pair = _pair_key(user_a, user_b)
		if self.uses_memory:
			async with self._memory.lock:
				matches = [
					Room.from_record(row)
					for row in self._memory.rooms.values()
					if _pair_key(row["participant_1"], row["participant_2"]) == pair
				]
			if not matches:
				return None
			return max(matches, key=lambda room: room.created_at)
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				SELECT id, room_name, participant_1, participant_2, share_code, created_at
				FROM rooms
				WHERE (participant_1 = $1 AND participant_2 = $2)
				   OR (participant_1 = $2 AND participant_2 = $1)
				ORDER BY created_at DESC
				LIMIT 1
				""",
				user_a,
				user_b,
			)
		return Room.from_record(record) if record else None

	async def insert(
		self,
		participant_1: str,
		*,
		participant_2: Optional[str] = None,
		room_name: Optional[str] = None,
	) -> Room:
		"""Insert a room, retrying share-code collisions."""
		for _ in range(_CODE_ATTEMPTS):
			code = self.code_factory()
			try:
				room = await self._insert_once(participant_1, participant_2, room_name, code)
			except UniqueViolation as exc:
				if "share_code" not in str(exc):
					raise
				continue
			await self._publish(INSERT, room.to_row())
			return room
		raise UniqueViolation("rooms_share_code_key")

	async def _insert_once(
		self,
		participant_1: str,
		participant_2: Optional[str],
		room_name: Optional[str],
		code: str,
	) -> Room:
		if self.uses_memory:
			async with self._memory.lock:
				for row in self._memory.rooms.values():
					if row["share_code"].upper() == code.upper():
						raise UniqueViolation("rooms_share_code_key")
				room = Room(
					id=str(uuid4()),
					participant_1=participant_1,
					participant_2=participant_2,
					room_name=room_name,
					share_code=code,
					created_at=self._memory.timestamp(),
				)
				self._memory.rooms[room.id] = room.to_row()
				return room
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO rooms (id, room_name, participant_1, participant_2, share_code)
				VALUES ($1, $2, $3, $4, $5)
				RETURNING id, room_name, participant_1, participant_2, share_code, created_at
				""",
				str(uuid4()),
				room_name,
				participant_1,
				participant_2,
				code,
			)
		return Room.from_record(record)

	async def set_participant_2(self, room_id: str, user_id: str) -> Optional[Room]:
		"""Fill the second seat only while it is empty; None when it was taken."""
		if self.uses_memory:
			async with self._memory.lock:
				row = self._memory.rooms.get(room_id)
				if row is None or row["participant_2"] is not None:
					return None
				row["participant_2"] = user_id
				room = Room.from_record(row)
		else:
			async with self._connection() as conn:
				record = await conn.fetchrow(
					"""
					UPDATE rooms SET participant_2 = $2
					WHERE id = $1 AND participant_2 IS NULL
					RETURNING id, room_name, participant_1, participant_2, share_code, created_at
					""",
					room_id,
					user_id,
				)
			if record is None:
				return None
			room = Room.from_record(record)
		await self._publish(UPDATE, room.to_row())
		return room

	async def delete(self, room_id: str) -> Optional[Room]:
		"""Delete a room and, by cascade, its messages. Returns the old row."""
		if self.uses_memory:
			async with self._memory.lock:
				row = self._memory.rooms.pop(room_id, None)
				if row is None:
					return None
				for message_id in [mid for mid, msg in self._memory.messages.items() if msg["room_id"] == room_id]:
					del self._memory.messages[message_id]
				room = Room.from_record(row)
		else:
			async with self._connection() as conn:
				record = await conn.fetchrow(
					"""
					DELETE FROM rooms WHERE id = $1
					RETURNING id, room_name, participant_1, participant_2, share_code, created_at
					""",
					room_id,
				)
			if record is None:
				return None
			room = Room.from_record(record)
		await self._publish(DELETE, room.to_row())
		return room

	async def exists(self, room_id: str) -> bool:
		return await self.get(room_id) is not None
