"""Composition root for one signed-in chat session."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import httpx

from textly.domain.assist.client import HttpAssistClient
from textly.domain.assist.exceptions import AssistUnavailable
from textly.domain.assist.models import AssistAction
from textly.domain.assist.store import PreferencesStore
from textly.domain.chat.models import Message
from textly.domain.chat.store import MessageStore
from textly.domain.profiles.client import HttpMetadataClient
from textly.domain.profiles.models import Profile
from textly.domain.rooms.models import Room
from textly.domain.rooms.store import RoomStore
from textly.domain.social.store import FriendshipStore
from textly.infra.datastore import Datastore
from textly.infra.local_cache import LocalCache
from textly.session.context import SessionContext
from textly.session.identity import Identity
from textly.settings import settings

logger = logging.getLogger(__name__)


class ChatOrchestrator:
	"""Wires identity, the stores, preferences and the assistant for one user."""

	def __init__(self, context: SessionContext) -> None:
		self.context = context
		self.rooms = RoomStore(context)
		self.messages = MessageStore(context, self.rooms)
		self.friendships = FriendshipStore(context, self.rooms)
		self.preferences = PreferencesStore(context.datastore.preferences, context.user_id)
		self.draft = ""
		self.assist_busy = False
		self.assist_action: Optional[AssistAction] = None
		self._self_seeded = False
		self._counterparts_resolved = False
		self.running = False
		self.rooms.on_rooms_loaded(self._after_rooms_loaded)

	@property
	def user_id(self) -> str:
		return self.context.user_id

	@property
	def profiles(self) -> Dict[str, Profile]:
		return self.context.resolver.profiles

	async def start(self) -> None:
		if self.running:
			return
		self.running = True
		self._seed_self()
		await self.context.resolver.hydrate()
		await self.messages.start()
		await self.rooms.start()
		await self.friendships.start()
		await self.preferences.load()

	async def stop(self) -> None:
		if not self.running:
			return
		self.running = False
		await self.friendships.stop()
		await self.messages.stop()
		await self.rooms.stop()

	async def sign_out(self) -> None:
		await self.stop()
		removed = await self.context.cache.remove_user(self.user_id)
		logger.info("session signed out", extra={"cache_entries_removed": removed})

	def _seed_self(self) -> None:
		if self._self_seeded:
			return
		identity = self.context.identity
		self.context.resolver.register_self(
			identity.id,
			email=identity.email,
			username=identity.display_name,
			avatar_url=identity.avatar_url,
		)
		self._self_seeded = True

	async def _after_rooms_loaded(self, rooms: List[Room]) -> None:
		if self._counterparts_resolved:
			return
		self._counterparts_resolved = True
		await self.context.resolver.resolve_profiles(self.rooms.counterpart_ids())

	# messaging

	async def send_draft(self) -> Optional[Message]:
		message = await self.messages.send_message(self.draft)
		if message is not None:
			self.draft = ""
		return message

	# assistant

	async def run_assist(self, action: AssistAction, text: str) -> str:
		"""Call the assistant with the busy flag and running action set."""
		if self.context.assist is None or not self.preferences.preferences.assistant_enabled:
			raise AssistUnavailable()
		self.assist_busy = True
		self.assist_action = action
		try:
			return await self.context.assist.transform(action, text)
		finally:
			self.assist_busy = False
			self.assist_action = None

	async def improve_draft(self) -> Optional[str]:
		return await self._rewrite_draft("improve")

	async def translate_draft(self) -> Optional[str]:
		return await self._rewrite_draft("translate")

	async def _rewrite_draft(self, action: AssistAction) -> Optional[str]:
		text = self.draft.strip()
		if not text:
			return None
		output = await self.run_assist(action, text)
		if output:
			self.draft = output
		return output


@asynccontextmanager
async def open_session(
	identity: Identity,
	datastore: Datastore,
	*,
	http: Optional[httpx.AsyncClient] = None,
	cache: Optional[LocalCache] = None,
) -> AsyncIterator[ChatOrchestrator]:
	"""Start a session and guarantee every subscription is released on exit.

	``http`` is a client for the API (base URL and auth header already set);
	without it the session runs without metadata lookups or the assistant.
	"""
	context = SessionContext.build(
		identity,
		datastore,
		cache=cache,
		metadata=HttpMetadataClient(http) if http is not None else None,
		assist=HttpAssistClient(http) if http is not None else None,
	)
	orchestrator = ChatOrchestrator(context)
	try:
		await orchestrator.start()
		yield orchestrator
	finally:
		await orchestrator.stop()


def api_http_client(access_token: str) -> httpx.AsyncClient:
	"""httpx client pointed at the API with the session's bearer token."""
	return httpx.AsyncClient(
		base_url=settings.api_base_url,
		headers={"Authorization": f"Bearer {access_token}"},
		timeout=settings.api_timeout_seconds,
	)
