"""Server-side profile metadata lookup behind ``POST /api/users/meta``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Set

from textly.domain.profiles.avatar import pick_avatar_from_metadata
from textly.domain.profiles.models import FALLBACK_USERNAME, AuthUser, UserMeta
from textly.infra.datastore import Datastore


@dataclass(slots=True)
class MetaLookup:
	users: List[UserMeta]
	requested: int
	rejected: int


def display_name(user: AuthUser) -> str:
	metadata = user.user_metadata
	for key in ("full_name", "name"):
		value = metadata.get(key)
		if isinstance(value, str) and value.strip():
			return value.strip()
	if user.email and "@" in user.email:
		local = user.email.split("@", 1)[0]
		if local:
			return local
	return FALLBACK_USERNAME


def to_user_meta(user: AuthUser) -> UserMeta:
	return UserMeta(
		id=user.id,
		email=user.email,
		nombre=display_name(user),
		avatar_url=pick_avatar_from_metadata(user.user_metadata),
	)


async def authorized_ids(datastore: Datastore, caller_id: str) -> Set[str]:
	"""The caller plus every participant of a room the caller is in."""
	allowed = {caller_id}
	for room in await datastore.rooms.list_for_user(caller_id):
		allowed.add(room.participant_1)
		if room.participant_2:
			allowed.add(room.participant_2)
	return allowed


async def lookup_user_meta(datastore: Datastore, caller_id: str, ids: Iterable[str]) -> MetaLookup:
	"""Resolve metadata for the authorized subset of ``ids``.

	Ids outside the caller's rooms are dropped silently; the counts let the
	route log the rejection. Ids without an auth record are omitted.
	"""
	requested = list(dict.fromkeys(str(i).lower() for i in ids))
	allowed = await authorized_ids(datastore, caller_id)
	allowed_lower = {uid.lower(): uid for uid in allowed}
	permitted = [allowed_lower[uid] for uid in requested if uid in allowed_lower]
	rejected = len(requested) - len(permitted)
	if not permitted:
		return MetaLookup(users=[], requested=len(requested), rejected=rejected)
	auth_users = await datastore.profiles.fetch_auth_users(permitted)
	users = [to_user_meta(auth_users[uid]) for uid in permitted if uid in auth_users]
	return MetaLookup(users=users, requested=len(requested), rejected=rejected)
