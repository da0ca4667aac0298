"""Assistant preferences persistence (``user_settings`` table)."""

from __future__ import annotations

from typing import Any, Optional

from textly.domain.assist.models import AssistPreferences
from textly.infra.datastore import Repository


class PreferencesRepository(Repository):
	async def get(self, user_id: str) -> Optional[AssistPreferences]:
		if self.uses_memory:
			async with self._memory.lock:
				row = self._memory.user_settings.get(user_id)
				return AssistPreferences.from_record(row) if row else None
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				SELECT assistant_enabled, writing_mode, translation_language
				FROM user_settings
				WHERE user_id = $1
				""",
				user_id,
			)
		return AssistPreferences.from_record(record) if record else None

	async def upsert(self, user_id: str, preferences: AssistPreferences) -> AssistPreferences:
		row: dict[str, Any] = preferences.to_row()
		if self.uses_memory:
			async with self._memory.lock:
				self._memory.user_settings[user_id] = {"user_id": user_id, **row}
			return preferences
		async with self._connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO user_settings (user_id, assistant_enabled, writing_mode, translation_language)
				VALUES ($1, $2, $3, $4)
				ON CONFLICT (user_id) DO UPDATE
				SET assistant_enabled = EXCLUDED.assistant_enabled,
				    writing_mode = EXCLUDED.writing_mode,
				    translation_language = EXCLUDED.translation_language,
				    updated_at = now()
				RETURNING assistant_enabled, writing_mode, translation_language
				""",
				user_id,
				row["assistant_enabled"],
				row["writing_mode"],
				row["translation_language"],
			)
		return AssistPreferences.from_record(record)

	async def get_or_create(self, user_id: str) -> AssistPreferences:
		existing = await self.get(user_id)
		if existing is not None:
			return existing
		return await self.upsert(user_id, AssistPreferences())
