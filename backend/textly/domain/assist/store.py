"""Client-side assistant preferences with optimistic updates."""

from __future__ import annotations

import logging
from typing import Any

from textly.domain.assist.models import AssistPreferences
from textly.domain.assist.repo import PreferencesRepository
from textly.infra.datastore import DatastoreError

logger = logging.getLogger(__name__)


class PreferencesStore:
	def __init__(self, repo: PreferencesRepository, user_id: str) -> None:
		self._repo = repo
		self._user_id = user_id
		self.preferences = AssistPreferences()
		self.loading = False

	async def load(self) -> AssistPreferences:
		"""Get-or-create the server row; failures keep the defaults."""
		self.loading = True
		try:
			self.preferences = await self._repo.get_or_create(self._user_id)
		except DatastoreError as exc:
			logger.warning("preferences load failed, using defaults: %s", exc)
		finally:
			self.loading = False
		return self.preferences

	async def update(self, **changes: Any) -> AssistPreferences:
		"""Apply locally, persist, reconcile with the stored row; roll back on failure."""
		previous = self.preferences
		self.preferences = previous.with_changes(**changes)
		try:
			self.preferences = await self._repo.upsert(self._user_id, self.preferences)
		except DatastoreError:
			self.preferences = previous
			raise
		return self.preferences
