"""Client-side profile resolution with in-flight dedupe and freshness window."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Set

from textly.domain.profiles.avatar import normalize_avatar_url
from textly.domain.profiles.client import MetadataClient
from textly.domain.profiles.exceptions import MetadataRateLimited
from textly.domain.profiles.models import FALLBACK_USERNAME, Profile, ProfileMatch, PublicProfile, UserMeta
from textly.domain.profiles.repo import ProfileRepository
from textly.infra.datastore import DatastoreError
from textly.infra.local_cache import LocalCache
from textly.settings import settings

logger = logging.getLogger(__name__)

CACHE_KIND = "profiles"


def merge_profile(user_id: str, public: Optional[PublicProfile], meta: Optional[UserMeta]) -> Profile:
	"""Public username wins over the metadata name; metadata avatar wins over the public one."""
	username = (public.username if public else None) or (meta.nombre if meta else None) or FALLBACK_USERNAME
	email = (public.email if public else None) or (meta.email if meta else None)
	avatar_url = normalize_avatar_url(meta.avatar_url if meta else None) or normalize_avatar_url(
		public.avatar_url if public else None
	)
	return Profile(id=user_id, username=username, email=email, avatar_url=avatar_url)


class ProfileResolver:
	def __init__(
		self,
		profiles: ProfileRepository,
		metadata: Optional[MetadataClient] = None,
		*,
		cache: Optional[LocalCache] = None,
		owner_id: Optional[str] = None,
		ttl_seconds: Optional[float] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._repo = profiles
		self._metadata = metadata
		self._cache = cache
		self._owner_id = owner_id
		self._ttl = float(settings.profile_ttl_seconds if ttl_seconds is None else ttl_seconds)
		self._clock = clock
		self.profiles: Dict[str, Profile] = {}
		self._fetched_at: Dict[str, float] = {}
		self._in_flight: Set[str] = set()
		self._metadata_blocked_until = 0.0

	def get(self, user_id: str) -> Optional[Profile]:
		return self.profiles.get(user_id)

	def is_fresh(self, user_id: str) -> bool:
		fetched = self._fetched_at.get(user_id)
		return fetched is not None and self._clock() - fetched < self._ttl

	def in_flight(self, user_id: str) -> bool:
		return user_id in self._in_flight

	async def resolve_profiles(self, ids: Iterable[Optional[str]]) -> Dict[str, Profile]:
		"""Resolve ids that are neither fresh nor already being fetched.

		Returns only the profiles resolved by this call.
		"""
		pending = [
			uid
			for uid in dict.fromkeys(i for i in ids if i)
			if uid not in self._in_flight and not self.is_fresh(uid)
		]
		if not pending:
			return {}
		self._in_flight.update(pending)
		try:
			try:
				public = await self._repo.fetch_public(pending)
			except DatastoreError as exc:
				logger.warning("public profile lookup failed: %s", exc)
				public = {}
			meta = await self._fetch_metadata(pending)
			now = self._clock()
			resolved: Dict[str, Profile] = {}
			for uid in pending:
				resolved[uid] = merge_profile(uid, public.get(uid), meta.get(uid))
				self.profiles[uid] = resolved[uid]
				self._fetched_at[uid] = now
		finally:
			self._in_flight.difference_update(pending)
		await self.persist()
		return resolved

	async def _fetch_metadata(self, ids: List[str]) -> Dict[str, UserMeta]:
		if self._metadata is None:
			return {}
		if self._clock() < self._metadata_blocked_until:
			logger.debug("metadata lookups paused by rate limit")
			return {}
		try:
			return await self._metadata.fetch(ids)
		except MetadataRateLimited as exc:
			self._metadata_blocked_until = self._clock() + exc.retry_after
			logger.warning("metadata endpoint rate limited, retry in %ss", exc.retry_after)
			return {}

	async def search_profiles(self, query: str, exclude_id: Optional[str] = None) -> List[ProfileMatch]:
		"""Username prefix search (at most 8 hits) enriched with metadata avatars."""
		rows = await self._repo.search_by_username(query, exclude_id=exclude_id)
		if not rows:
			return []
		meta = await self._fetch_metadata([row.id for row in rows])
		matches: List[ProfileMatch] = []
		for row in rows:
			user_meta = meta.get(row.id)
			avatar = normalize_avatar_url(user_meta.avatar_url if user_meta else None) or normalize_avatar_url(
				row.avatar_url
			)
			matches.append(
				ProfileMatch(
					id=row.id,
					email=row.email,
					username=row.username,
					created_at=row.created_at,
					avatar_url=avatar,
				)
			)
		return matches

	def register_self(
		self,
		user_id: str,
		*,
		email: Optional[str],
		username: str,
		avatar_url: Optional[str],
	) -> Profile:
		profile = Profile(
			id=user_id,
			username=username,
			email=email,
			avatar_url=normalize_avatar_url(avatar_url),
		)
		self.profiles[user_id] = profile
		self._fetched_at[user_id] = self._clock()
		return profile

	async def hydrate(self) -> int:
		"""Paint profiles from the durable cache.

		Each hydrated profile is fresh for whatever is left of the TTL, counted
		from when the envelope was written.
		"""
		if self._cache is None or self._owner_id is None:
			return 0
		entry = await self._cache.read_entry(
			self._cache.key(CACHE_KIND, self._owner_id),
			max_age_ms=settings.profile_cache_ttl_seconds * 1000,
		)
		if entry is None or not isinstance(entry.data, dict):
			return 0
		fetched_at = self._clock() - entry.age_ms(self._cache.now_ms()) / 1000
		count = 0
		for uid, row in entry.data.items():
			if uid in self.profiles or not isinstance(row, dict):
				continue
			try:
				self.profiles[uid] = Profile.from_record(row)
			except (KeyError, TypeError, ValueError):
				continue
			self._fetched_at[uid] = fetched_at
			count += 1
		return count

	async def persist(self) -> None:
		if self._cache is None or self._owner_id is None:
			return
		await self._cache.write(
			self._cache.key(CACHE_KIND, self._owner_id),
			{uid: profile.to_cache() for uid, profile in self.profiles.items()},
			ttl_seconds=settings.profile_cache_ttl_seconds,
		)
