"""Friendship persistence."""

from __future__ import annotations

from typing import List, Optional
from uuid import uuid4

from textly.domain.social.models import ACTIVE_STATUSES, Friendship, FriendshipStatus
from textly.infra.changefeed import DELETE, INSERT, UPDATE
from textly.infra.datastore import Repository, UniqueViolation

_COLUMNS = "id, sender_id, receiver_id, status, created_at"


def _same_pair(row: dict, a: str, b: str) -> bool:
	return {row["sender_id"], row["receiver_id"]} == {a, b}


class FriendshipRepository(Repository):
	topic = "friendships"

	async def list_pending_received(self, user_id: str) -> List[Friendship]:
		return await self._list_pending("receiver_id", user_id)

	async def list_pending_sent(self, user_id: str) -> List[Friendship]:
		return await self._list_pending("sender_id", user_id)

	async def _list_pending(self, column: str, user_id: str) -> List[Friendship]:
		if self.uses_memory:
			async with self._memory.lock:
				rows = [
					Friendship.from_record(row)
					for row in self._memory.friendships.values()
					if row[column] == user_id and row["status"] == FriendshipStatus.PENDING.value
				]
			rows.sort(key=lambda item: item.created_at, reverse=True)
			return rows
		async with self._connection() as conn:
			records = await conn.fetch(
				f"""
				SELECT {_COLUMNS}
				FROM friendships
				WHERE {column} = $1 AND status = 'pending'
				ORDER BY created_at DESC
				""",
				user_id,
			)
		return [Friendship.from_record(record) for record in records]

	async def find_between(self, user_a: str, user_b: str) -> Optional[Friendship]:
		"""Most recent friendship row between the pair in either direction."""
		if self.uses_memory:
			async with self._memory.lock:
				rows = [
					Friendship.from_record(row)
					for row in self._memory.friendships.values()
					if _same_pair(row, user_a, user_b)
				]
			return max(rows, key=lambda item: item.created_at) if rows else None
		async with self._connection() as conn:
			record = await conn.fetchrow(
				f"""
				SELECT {_COLUMNS}
				FROM friendships
				WHERE (sender_id = $1 AND receiver_id = $2) OR (sender_id = $2 AND receiver_id = $1)
				ORDER BY created_at DESC
				LIMIT 1
				""",
				user_a,
				user_b,
			)
		return Friendship.from_record(record) if record else None

	async def insert(self, sender_id: str, receiver_id: str) -> Friendship:
		"""Create a pending request; UniqueViolation if the pair already has an active row."""
		if self.uses_memory:
			async with self._memory.lock:
				for row in self._memory.friendships.values():
					if _same_pair(row, sender_id, receiver_id) and FriendshipStatus(row["status"]) in ACTIVE_STATUSES:
						raise UniqueViolation("friendships_active_pair_idx")
				friendship = Friendship(
					id=str(uuid4()),
					sender_id=sender_id,
					receiver_id=receiver_id,
					status=FriendshipStatus.PENDING,
					created_at=self._memory.timestamp(),
				)
				self._memory.friendships[friendship.id] = friendship.to_row()
		else:
			async with self._connection() as conn:
				record = await conn.fetchrow(
					f"""
					INSERT INTO friendships (id, sender_id, receiver_id, status)
					VALUES ($1, $2, $3, 'pending')
					RETURNING {_COLUMNS}
					""",
					str(uuid4()),
					sender_id,
					receiver_id,
				)
			friendship = Friendship.from_record(record)
		await self._publish(INSERT, friendship.to_row())
		return friendship

	async def accept(self, friendship_id: str, receiver_id: str) -> Optional[Friendship]:
		"""Mark a pending request accepted, scoped to its receiver; None when no row matched."""
		if self.uses_memory:
			async with self._memory.lock:
				row = self._memory.friendships.get(friendship_id)
				if row is None or row["receiver_id"] != receiver_id or row["status"] != FriendshipStatus.PENDING.value:
					return None
				row["status"] = FriendshipStatus.ACCEPTED.value
				friendship = Friendship.from_record(row)
		else:
			async with self._connection() as conn:
				record = await conn.fetchrow(
					f"""
					UPDATE friendships SET status = 'accepted'
					WHERE id = $1 AND receiver_id = $2 AND status = 'pending'
					RETURNING {_COLUMNS}
					""",
					friendship_id,
					receiver_id,
				)
			if record is None:
				return None
			friendship = Friendship.from_record(record)
		await self._publish(UPDATE, friendship.to_row())
		return friendship

	async def delete_pending(self, friendship_id: str, sender_id: str) -> bool:
		"""Delete a pending request, scoped to its sender; False when no row matched."""
		if self.uses_memory:
			async with self._memory.lock:
				row = self._memory.friendships.get(friendship_id)
				if row is None or row["sender_id"] != sender_id or row["status"] != FriendshipStatus.PENDING.value:
					return False
				del self._memory.friendships[friendship_id]
				friendship = Friendship.from_record(row)
		else:
			async with self._connection() as conn:
				record = await conn.fetchrow(
					f"""
					DELETE FROM friendships
					WHERE id = $1 AND sender_id = $2 AND status = 'pending'
					RETURNING {_COLUMNS}
					""",
					friendship_id,
					sender_id,
				)
			if record is None:
				return False
			friendship = Friendship.from_record(record)
		await self._publish(DELETE, friendship.to_row())
		return True
