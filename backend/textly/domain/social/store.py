"""Pending friend requests for one session and the accept/cancel flow."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from textly.domain.rooms.models import Room
from textly.domain.rooms.store import RoomStore
from textly.domain.social.exceptions import FriendRequestFailed, RequestNotCancellable, RequestNotFound
from textly.domain.social.models import Friendship, FriendshipStatus
from textly.infra.changefeed import DELETE, INSERT, UPDATE, ChangeEvent, Subscription
from textly.infra.datastore import DatastoreError
from textly.obs import metrics as obs_metrics

if TYPE_CHECKING:
	from textly.session.context import SessionContext

logger = logging.getLogger(__name__)


def _without(items: List[Friendship], friendship_id: str) -> List[Friendship]:
	return [item for item in items if item.id != friendship_id]


def _with(items: List[Friendship], friendship: Friendship) -> List[Friendship]:
	if any(item.id == friendship.id for item in items):
		return items
	return [friendship, *items]


class FriendshipStore:
	def __init__(self, context: "SessionContext", rooms: RoomStore) -> None:
		self._ctx = context
		self._rooms = rooms
		self.received: List[Friendship] = []
		self.sent: List[Friendship] = []
		self._subscription: Optional[Subscription] = None

	@property
	def user_id(self) -> str:
		return self._ctx.user_id

	async def start(self) -> None:
		if self._subscription is None:
			self._subscription = self._ctx.feed.subscribe(
				"friendships",
				self._on_change,
				events=(INSERT, UPDATE, DELETE),
				filter=lambda row: self.user_id in (row.get("sender_id"), row.get("receiver_id")),
			)
		await self.load_requests()

	async def stop(self) -> None:
		if self._subscription is not None:
			self._subscription.unsubscribe()
			self._subscription = None

	async def load_requests(self) -> None:
		repo = self._ctx.datastore.friendships
		self.received = await repo.list_pending_received(self.user_id)
		self.sent = await repo.list_pending_sent(self.user_id)
		counterparties = [item.sender_id for item in self.received] + [item.receiver_id for item in self.sent]
		await self._ctx.resolver.resolve_profiles(counterparties)

	async def send_request(self, target_id: str) -> Optional[Friendship]:
		"""Send a request, or reuse the existing relationship with ``target_id``."""
		if not target_id or target_id == self.user_id:
			return None
		datastore = self._ctx.datastore
		existing = await datastore.friendships.find_between(self.user_id, target_id)
		if existing is not None:
			if existing.status is FriendshipStatus.ACCEPTED:
				room = await datastore.rooms.find_by_participants(self.user_id, target_id)
				if room is not None:
					await self._open_room(room)
					await self._ctx.resolver.resolve_profiles([target_id])
			elif existing.is_pending:
				await self.load_requests()
			return existing
		try:
			friendship = await datastore.friendships.insert(self.user_id, target_id)
		except DatastoreError as exc:
			logger.warning("friend request insert failed: %s", exc)
			raise FriendRequestFailed() from exc
		self.sent = _with(self.sent, friendship)
		await self._ctx.resolver.resolve_profiles([target_id])
		return friendship

	async def accept_request(self, request_id: str, sender_id: str) -> Optional[Room]:
		"""Accept as receiver and open the pair's room, creating it when missing."""
		datastore = self._ctx.datastore
		try:
			accepted = await datastore.friendships.accept(request_id, self.user_id)
		except DatastoreError as exc:
			raise FriendRequestFailed() from exc
		if accepted is None:
			raise RequestNotFound()
		room = await datastore.rooms.find_by_participants(self.user_id, sender_id)
		if room is None:
			try:
				room = await datastore.rooms.insert(self.user_id, participant_2=sender_id)
				obs_metrics.inc_room_created("friendship")
			except DatastoreError as exc:
				logger.info("room for accepted friendship not created (%s), reusing existing", exc)
				room = await datastore.rooms.find_by_participants(self.user_id, sender_id)
		if room is not None:
			await self._open_room(room)
		self.received = _without(self.received, request_id)
		await self._ctx.resolver.resolve_profiles([sender_id])
		return room

	async def cancel_request(self, request_id: str) -> None:
		deleted = await self._ctx.datastore.friendships.delete_pending(request_id, self.user_id)
		if not deleted:
			raise RequestNotCancellable()
		self.sent = _without(self.sent, request_id)

	async def _open_room(self, room: Room) -> None:
		await self._rooms.add_room(room)
		await self._rooms.activate(room.id)

	async def _on_change(self, change: ChangeEvent) -> None:
		friendship = Friendship.from_record(change.row)
		is_receiver = friendship.receiver_id == self.user_id
		is_sender = friendship.sender_id == self.user_id
		if change.event == DELETE:
			self.received = _without(self.received, friendship.id)
			self.sent = _without(self.sent, friendship.id)
			return
		if change.event == INSERT and not friendship.is_pending:
			return
		if is_receiver:
			self.received = _with(self.received, friendship) if friendship.is_pending else _without(self.received, friendship.id)
		if is_sender:
			self.sent = _with(self.sent, friendship) if friendship.is_pending else _without(self.sent, friendship.id)
		if friendship.is_pending:
			await self._ctx.resolver.resolve_profiles([friendship.other_party(self.user_id)])
