"""Public profiles and auth-provider records."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

from textly.domain.profiles.models import AuthUser, PublicProfile
from textly.infra.datastore import Repository

SEARCH_LIMIT = 8


def _unique(ids: Iterable[str]) -> List[str]:
	return list(dict.fromkeys(str(i) for i in ids if i))


class ProfileRepository(Repository):
	async def fetch_public(self, ids: Iterable[str]) -> Dict[str, PublicProfile]:
		wanted = _unique(ids)
		if not wanted:
			return {}
		if self.uses_memory:
			async with self._memory.lock:
				return {
					uid: PublicProfile.from_record(self._memory.profiles[uid])
					for uid in wanted
					if uid in self._memory.profiles
				}
		async with self._connection() as conn:
			records = await conn.fetch(
				"SELECT id, email, username, avatar_url, created_at FROM profiles WHERE id = ANY($1::uuid[])",
				wanted,
			)
		return {str(record["id"]): PublicProfile.from_record(record) for record in records}

	async def search_by_username(
		self,
		query: str,
		*,
		exclude_id: Optional[str] = None,
		limit: int = SEARCH_LIMIT,
	) -> List[PublicProfile]:
		"""Case-insensitive username prefix search."""
		term = (query or "").strip()
		if not term:
			return []
		if self.uses_memory:
			lowered = term.lower()
			async with self._memory.lock:
				matches = [
					PublicProfile.from_record(row)
					for row in self._memory.profiles.values()
					if (row.get("username") or "").lower().startswith(lowered) and row["id"] != exclude_id
				]
			matches.sort(key=lambda profile: (profile.username or "").lower())
			return matches[:limit]
		pattern = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
		async with self._connection() as conn:
			records = await conn.fetch(
				"""
				SELECT id, email, username, avatar_url, created_at
				FROM profiles
				WHERE username ILIKE $1 AND ($2::uuid IS NULL OR id <> $2::uuid)
				ORDER BY lower(username)
				LIMIT $3
				""",
				pattern,
				exclude_id,
				limit,
			)
		return [PublicProfile.from_record(record) for record in records]

	async def fetch_auth_users(self, ids: Iterable[str]) -> Dict[str, AuthUser]:
		wanted = _unique(ids)
		if not wanted:
			return {}
		if self.uses_memory:
			async with self._memory.lock:
				return {
					uid: AuthUser.from_record(self._memory.auth_users[uid])
					for uid in wanted
					if uid in self._memory.auth_users
				}
		async with self._connection() as conn:
			records = await conn.fetch(
				"SELECT id, email, user_metadata FROM auth_users WHERE id = ANY($1::uuid[])",
				wanted,
			)
		result: Dict[str, AuthUser] = {}
		for record in records:
			row = dict(record)
			if isinstance(row.get("user_metadata"), str):
				row["user_metadata"] = json.loads(row["user_metadata"])
			result[str(row["id"])] = AuthUser.from_record(row)
		return result

	async def save_public(
		self,
		user_id: str,
		*,
		username: Optional[str],
		email: Optional[str] = None,
		avatar_url: Optional[str] = None,
	) -> PublicProfile:
		if self.uses_memory:
			async with self._memory.lock:
				existing = self._memory.profiles.get(user_id)
				row = {
					"id": user_id,
					"email": email,
					"username": username,
					"avatar_url": avatar_url,
					"created_at": existing["created_at"] if existing else self._memory.timestamp(),
				}
				self._memory.profiles[user_id] = row
				return PublicProfile.from_record(row)
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO profiles (id, email, username, avatar_url)
				VALUES ($1, $2, $3, $4)
				ON CONFLICT (id) DO UPDATE
				SET email = EXCLUDED.email, username = EXCLUDED.username, avatar_url = EXCLUDED.avatar_url
				RETURNING id, email, username, avatar_url, created_at
				""",
				user_id,
				email,
				username,
				avatar_url,
			)
		return PublicProfile.from_record(record)

	async def save_auth_user(
		self,
		user_id: str,
		*,
		email: Optional[str] = None,
		user_metadata: Optional[Mapping[str, Any]] = None,
	) -> AuthUser:
		metadata = dict(user_metadata or {})
		if self.uses_memory:
			async with self._memory.lock:
				row = {"id": user_id, "email": email, "user_metadata": metadata}
				self._memory.auth_users[user_id] = row
				return AuthUser.from_record(row)
		async with self._connection() as conn:
			await conn.execute(
				"""
				INSERT INTO auth_users (id, email, user_metadata)
				VALUES ($1, $2, $3::jsonb)
				ON CONFLICT (id) DO UPDATE
				SET email = EXCLUDED.email, user_metadata = EXCLUDED.user_metadata
				""",
				user_id,
				email,
				json.dumps(metadata),
			)
		return AuthUser(id=user_id, email=email, user_metadata=metadata)
