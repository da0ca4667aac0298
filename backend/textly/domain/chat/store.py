"""Messages of the active room, unread counters and the inbox subscription."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from textly.domain.chat.exceptions import MessageSendFailed
from textly.domain.chat.models import Message, MessageState
from textly.domain.rooms.exceptions import RoomDeleted
from textly.domain.rooms.store import RoomStore
from textly.infra.changefeed import INSERT, ChangeEvent, Subscription
from textly.infra.datastore import DatastoreError, ForeignKeyViolation
from textly.obs import metrics as obs_metrics
from textly.settings import settings

if TYPE_CHECKING:
	from textly.session.context import SessionContext

logger = logging.getLogger(__name__)

CACHE_KIND = "messages"


def merge_messages(current: Iterable[Message], incoming: Iterable[Message]) -> List[Message]:
	"""Set union by id, ordered by created_at ascending."""
	by_id: Dict[str, Message] = {message.id: message for message in current}
	for message in incoming:
		by_id.setdefault(message.id, message)
	return sorted(by_id.values(), key=Message.sort_key)


class MessageStore:
	def __init__(self, context: "SessionContext", rooms: RoomStore) -> None:
		self._ctx = context
		self._rooms = rooms
		self.messages: List[Message] = []
		self.unread: Dict[str, int] = {}
		self.state = MessageState.IDLE
		self._room_id: Optional[str] = None
		self._invalidated: set[str] = set()
		self._inbox: Optional[Subscription] = None
		rooms.on_active_change(self._on_active_change)
		rooms.on_room_removed(self._on_room_removed)

	@property
	def user_id(self) -> str:
		return self._ctx.user_id

	@property
	def room_id(self) -> Optional[str]:
		return self._room_id

	def unread_count(self, room_id: str) -> int:
		return self.unread.get(room_id, 0)

	async def start(self) -> None:
		if self._inbox is None:
			self._inbox = self._ctx.feed.subscribe("messages", self._on_inbox, events=(INSERT,))

	async def stop(self) -> None:
		if self._inbox is not None:
			self._inbox.unsubscribe()
			self._inbox = None

	def mark_read(self, room_id: str) -> None:
		self.unread[room_id] = 0

	async def load_messages(self, room_id: str) -> List[Message]:
		"""Fetch all messages of ``room_id`` and merge them into the active list.

		The result is discarded (but still returned) when the active room
		changed while the fetch was in flight.
		"""
		fetched = await self._ctx.datastore.messages.list_for_room(room_id)
		if self._room_id != room_id or room_id in self._invalidated:
			logger.debug("discarding stale message load for %s", room_id)
			return fetched
		self.messages = merge_messages(self.messages, fetched)
		self.state = MessageState.READY
		await self._persist(room_id)
		await self._ctx.resolver.resolve_profiles(message.sender_id for message in fetched)
		return fetched

	async def send_message(self, text: str) -> Optional[Message]:
		"""Send to the active room; None for blank text or no active room."""
		content = (text or "").strip()
		room_id = self._rooms.active_room_id
		if not content or room_id is None:
			return None
		repo = self._ctx.datastore
		try:
			exists = await repo.rooms.exists(room_id)
		except DatastoreError as exc:
			raise MessageSendFailed() from exc
		if not exists:
			await self._rooms.invalidate_room(room_id)
			raise RoomDeleted(room_id)
		try:
			message = await repo.messages.insert(room_id, self.user_id, content)
		except ForeignKeyViolation as exc:
			await self._rooms.invalidate_room(room_id)
			raise RoomDeleted(room_id) from exc
		except DatastoreError as exc:
			logger.warning("message send failed: %s", exc)
			raise MessageSendFailed() from exc
		obs_metrics.inc_message_sent()
		if self._room_id == room_id:
			self._append(message)
			await self._persist(room_id)
		return message

	# listeners

	async def _on_active_change(self, room_id: Optional[str]) -> None:
		if room_id is None:
			invalidated = self._room_id in self._invalidated
			self._room_id = None
			self.messages = []
			self.state = MessageState.INVALIDATED if invalidated else MessageState.IDLE
			return
		self.mark_read(room_id)
		if room_id == self._room_id and self.state in (MessageState.LOADING, MessageState.READY):
			return
		self._room_id = room_id
		self.messages = []
		self.state = MessageState.LOADING
		entry = await self._ctx.cache.read_entry(
			self._ctx.cache.key(CACHE_KIND, self.user_id, room_id),
			max_age_ms=settings.messages_cache_ttl_seconds * 1000,
		)
		if entry is not None and self._room_id == room_id:
			try:
				cached = [Message.from_record(row) for row in entry.data or []]
			except (KeyError, TypeError, ValueError):
				cached = []
			self.messages = merge_messages(self.messages, cached)
			fresh_ms = settings.messages_cache_fresh_seconds * 1000
			if cached and entry.age_ms(self._now_ms()) < fresh_ms:
				self.state = MessageState.READY
				await self._ctx.resolver.resolve_profiles(message.sender_id for message in cached)
				return
		try:
			await self.load_messages(room_id)
		except DatastoreError as exc:
			logger.warning("message load failed for %s: %s", room_id, exc)

	async def _on_room_removed(self, room_id: str, remote: bool) -> None:
		"""Only a remote delete leaves the active list invalidated; an own delete just clears it."""
		self.unread.pop(room_id, None)
		await self._ctx.cache.remove(self._ctx.cache.key(CACHE_KIND, self.user_id, room_id))
		if room_id != self._room_id:
			return
		self.messages = []
		if remote:
			self._invalidated.add(room_id)
			self.state = MessageState.INVALIDATED
		else:
			self.state = MessageState.IDLE

	async def _on_inbox(self, change: ChangeEvent) -> None:
		message = Message.from_record(change.row)
		if not self._rooms.is_member_room(message.room_id):
			return
		if message.room_id == self._room_id and message.room_id == self._rooms.active_room_id:
			self._append(message)
			await self._persist(message.room_id)
		elif message.sender_id != self.user_id:
			self.unread[message.room_id] = self.unread.get(message.room_id, 0) + 1
		await self._ctx.resolver.resolve_profiles([message.sender_id])

	# internals

	def _append(self, message: Message) -> None:
		if any(existing.id == message.id for existing in self.messages):
			return
		self.messages = merge_messages(self.messages, [message])

	async def _persist(self, room_id: str) -> None:
		limit = max(0, settings.messages_cache_limit)
		recent = self.messages[-limit:] if limit else []
		await self._ctx.cache.write(
			self._ctx.cache.key(CACHE_KIND, self.user_id, room_id),
			[message.to_cache() for message in recent],
			ttl_seconds=settings.messages_cache_ttl_seconds,
		)

	def _now_ms(self) -> int:
		return self._ctx.cache.now_ms()
