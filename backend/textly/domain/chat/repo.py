"""Message persistence."""

from __future__ import annotations

from typing import List
from uuid import uuid4

from textly.domain.chat.models import Message
from textly.infra.changefeed import INSERT
from textly.infra.datastore import ForeignKeyViolation, Repository


class MessageRepository(Repository):
	topic = "messages"

	async def list_for_room(self, room_id: str) -> List[Message]:
		"""All messages of a room ordered by created_at ascending."""
		if self.uses_memory:
			async with self._memory.lock:
				messages = [
					Message.from_record(row)
					for row in self._memory.messages.values()
					if row["room_id"] == room_id
				]
			messages.sort(key=Message.sort_key)
			return messages
		async with self._connection() as conn:
			records = await conn.fetch(
				"""
				SELECT id, room_id, sender_id, content, created_at
				FROM messages
				WHERE room_id = $1
				ORDER BY created_at ASC, id ASC
				""",
				room_id,
			)
		return [Message.from_record(record) for record in records]

	async def insert(self, room_id: str, sender_id: str, content: str) -> Message:
		"""Append a message; ForeignKeyViolation when the room is gone."""
		if self.uses_memory:
			async with self._memory.lock:
				if room_id not in self._memory.rooms:
					raise ForeignKeyViolation("messages_room_id_fkey")
				message = Message(
					id=str(uuid4()),
					room_id=room_id,
					sender_id=sender_id,
					content=content,
					created_at=self._memory.timestamp(),
				)
				self._memory.messages[message.id] = message.to_row()
		else:
			async with self._connection() as conn:
				record = await conn.fetchrow(
					"""
					INSERT INTO messages (id, room_id, sender_id, content)
					VALUES ($1, $2, $3, $4)
					RETURNING id, room_id, sender_id, content, created_at
					""",
					str(uuid4()),
					room_id,
					sender_id,
					content,
				)
			message = Message.from_record(record)
		await self._publish(INSERT, message.to_row())
		return message
