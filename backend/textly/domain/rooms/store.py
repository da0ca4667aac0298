"""Room list, active-room pointer and room lifecycle for one session."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Set

from textly.domain.rooms.exceptions import RoomCreateFailed
from textly.domain.rooms.models import JoinResult, Room
from textly.infra.changefeed import DELETE, INSERT, UPDATE, ChangeEvent, Subscription
from textly.infra.datastore import DatastoreError
from textly.obs import metrics as obs_metrics
from textly.settings import settings

if TYPE_CHECKING:
	from textly.session.context import SessionContext

logger = logging.getLogger(__name__)

CACHE_KIND = "rooms"
ROOM_DELETED_NOTICE = "This chat was deleted."

ActiveListener = Callable[[Optional[str]], Awaitable[None]]
RemovedListener = Callable[[str, bool], Awaitable[None]]


class RoomStore:
	def __init__(self, context: "SessionContext") -> None:
		self._ctx = context
		self.rooms: List[Room] = []
		self.active_room_id: Optional[str] = None
		self.deleted_notice: Optional[str] = None
		self.loaded = False
		self._room_sub: Optional[Subscription] = None
		self._delete_sub: Optional[Subscription] = None
		self._own_deletes: Set[str] = set()
		self._active_listeners: List[ActiveListener] = []
		self._removed_listeners: List[RemovedListener] = []
		self._load_listeners: List[Callable[[List[Room]], Awaitable[None]]] = []

	@property
	def user_id(self) -> str:
		return self._ctx.user_id

	@property
	def active_room(self) -> Optional[Room]:
		return self.get(self.active_room_id) if self.active_room_id else None

	def get(self, room_id: str) -> Optional[Room]:
		return next((room for room in self.rooms if room.id == room_id), None)

	def is_member_room(self, room_id: str) -> bool:
		return self.get(room_id) is not None

	def counterpart_ids(self) -> List[str]:
		ids = (room.counterpart_of(self.user_id) for room in self.rooms)
		return list(dict.fromkeys(uid for uid in ids if uid))

	def on_active_change(self, listener: ActiveListener) -> None:
		self._active_listeners.append(listener)

	def on_room_removed(self, listener: RemovedListener) -> None:
		self._removed_listeners.append(listener)

	def on_rooms_loaded(self, listener: Callable[[List[Room]], Awaitable[None]]) -> None:
		self._load_listeners.append(listener)

	# lifecycle

	async def start(self) -> None:
		if self._room_sub is None:
			self._room_sub = self._ctx.feed.subscribe(
				"rooms",
				self._on_room_change,
				events=(INSERT, UPDATE),
				filter=lambda row: self.user_id in (row.get("participant_1"), row.get("participant_2")),
			)
		await self.hydrate()
		await self.load_rooms()

	async def stop(self) -> None:
		if self._room_sub is not None:
			self._room_sub.unsubscribe()
			self._room_sub = None
		self._release_delete_subscription()

	async def hydrate(self) -> bool:
		"""Paint rooms and the active pointer from the cache before the network load."""
		data = await self._ctx.cache.read(
			self._ctx.cache.key(CACHE_KIND, self.user_id),
			max_age_ms=settings.rooms_cache_ttl_seconds * 1000,
		)
		if not isinstance(data, dict) or self.loaded:
			return False
		try:
			rooms = [Room.from_record(row) for row in data.get("rooms") or []]
		except (KeyError, TypeError, ValueError):
			logger.info("ignoring unreadable rooms cache")
			return False
		self.rooms = rooms
		active = data.get("active_room_id")
		if active and self.get(active):
			await self._set_active(active)
		return True

	async def load_rooms(self) -> List[Room]:
		"""Fetch the caller's rooms (newest first); the result supersedes any cache paint."""
		rooms = await self._ctx.datastore.rooms.list_for_user(self.user_id)
		self.rooms = rooms
		self.loaded = True
		if self.active_room_id and not self.get(self.active_room_id):
			await self._set_active(None)
		await self._persist()
		for listener in list(self._load_listeners):
			await listener(rooms)
		return rooms

	# mutations

	async def create_room(self, name: Optional[str] = None) -> Room:
		room_name = (name or "").strip() or None
		try:
			room = await self._ctx.datastore.rooms.insert(self.user_id, room_name=room_name)
		except DatastoreError as exc:
			logger.warning("room create failed: %s", exc)
			raise RoomCreateFailed() from exc
		obs_metrics.inc_room_created("share_code")
		self._insert_local(room)
		await self.activate(room.id)
		return room

	async def join_room(self, code: str) -> JoinResult:
		repo = self._ctx.datastore.rooms
		room = await repo.get_by_code(code)
		if room is None:
			return JoinResult.failed("room_not_found")
		if room.participant_1 == self.user_id:
			return JoinResult.failed("already_creator")
		if room.participant_2 is not None:
			return JoinResult.failed("room_full")
		try:
			joined = await repo.set_participant_2(room.id, self.user_id)
		except DatastoreError as exc:
			logger.info("join of %s rejected: %s", room.id, exc)
			return JoinResult.failed("room_full")
		if joined is None:
			return JoinResult.failed("room_full")
		self._insert_local(joined)
		await self.activate(joined.id)
		await self._ctx.resolver.resolve_profiles([joined.participant_1])
		return JoinResult.ok(joined)

	async def delete_room(self, room_id: str) -> None:
		self._own_deletes.add(room_id)
		try:
			await self._ctx.datastore.rooms.delete(room_id)
		finally:
			self._own_deletes.discard(room_id)
		was_active = self.active_room_id == room_id
		self.rooms = [room for room in self.rooms if room.id != room_id]
		await self._notify_removed(room_id, remote=False)
		if was_active:
			await self._set_active(self.rooms[0].id if self.rooms else None)
		await self._persist()

	async def add_room(self, room: Room) -> None:
		"""Insert (deduped by id); activates only when nothing is active."""
		self._insert_local(room)
		if self.active_room_id is None:
			await self.activate(room.id)
		else:
			await self._persist()

	async def activate(self, room_id: Optional[str]) -> None:
		if room_id is not None and not self.get(room_id):
			raise KeyError(room_id)
		self.deleted_notice = None
		await self._set_active(room_id)
		await self._persist()

	async def invalidate_room(self, room_id: str) -> None:
		"""The room no longer exists: drop it, clear it if active, raise the notice."""
		was_active = self.active_room_id == room_id
		self.rooms = [room for room in self.rooms if room.id != room_id]
		if was_active:
			self.deleted_notice = ROOM_DELETED_NOTICE
		await self._notify_removed(room_id, remote=True)
		if was_active:
			await self._set_active(None)
		await self._persist()

	def dismiss_notice(self) -> None:
		self.deleted_notice = None

	# realtime

	async def _on_room_change(self, change: ChangeEvent) -> None:
		room = Room.from_record(change.row)
		if change.event == INSERT:
			if self.get(room.id):
				return
			await self.add_room(room)
		elif change.event == UPDATE:
			known = self.get(room.id)
			if known is None:
				await self.add_room(room)
			else:
				self.rooms = [room if existing.id == room.id else existing for existing in self.rooms]
				await self._persist()
		counterpart = room.counterpart_of(self.user_id)
		if counterpart:
			await self._ctx.resolver.resolve_profiles([counterpart])

	async def _on_active_deleted(self, change: ChangeEvent) -> None:
		room_id = str(change.row.get("id"))
		if room_id in self._own_deletes:
			return
		logger.info("active room deleted remotely", extra={"room_id": room_id})
		await self.invalidate_room(room_id)

	# internals

	def _insert_local(self, room: Room) -> None:
		if self.get(room.id):
			self.rooms = [room if existing.id == room.id else existing for existing in self.rooms]
			return
		self.rooms = [room, *self.rooms]

	async def _set_active(self, room_id: Optional[str]) -> None:
		changed = room_id != self.active_room_id
		self.active_room_id = room_id
		if changed or self._delete_sub is None:
			self._release_delete_subscription()
			if room_id is not None:
				self._delete_sub = self._ctx.feed.subscribe(
					"rooms",
					self._on_active_deleted,
					events=(DELETE,),
					filter={"id": room_id},
				)
		for listener in list(self._active_listeners):
			await listener(room_id)

	def _release_delete_subscription(self) -> None:
		if self._delete_sub is not None:
			self._delete_sub.unsubscribe()
			self._delete_sub = None

	async def _notify_removed(self, room_id: str, *, remote: bool) -> None:
		for listener in list(self._removed_listeners):
			await listener(room_id, remote)

	async def _persist(self) -> None:
		await self._ctx.cache.write(
			self._ctx.cache.key(CACHE_KIND, self.user_id),
			{
				"rooms": [room.to_cache() for room in self.rooms],
				"active_room_id": self.active_room_id,
			},
			ttl_seconds=settings.rooms_cache_ttl_seconds,
		)
