"""In-process change feed standing in for the datastore's realtime push.

Repositories publish a ChangeEvent after every write; stores subscribe per
topic with optional event and row filters and release the handle on stop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from textly.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"
EVENTS = frozenset({INSERT, UPDATE, DELETE})

RowFilter = Union[Mapping[str, Any], Callable[[Mapping[str, Any]], bool]]


@dataclass(slots=True, frozen=True)
class ChangeEvent:
	topic: str
	event: str
	# For deletes this is the old row.
	row: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[ChangeEvent], Union[Awaitable[None], None]]


class Subscription:
	"""Handle returned by ChangeFeed.subscribe; unsubscribe() is idempotent."""

	def __init__(
		self,
		feed: "ChangeFeed",
		topic: str,
		handler: Handler,
		events: Optional[frozenset[str]],
		row_filter: Optional[RowFilter],
	) -> None:
		self._feed = feed
		self.topic = topic
		self._handler = handler
		self._events = events
		self._filter = row_filter
		self.active = True

	def matches(self, change: ChangeEvent) -> bool:
		if not self.active:
			return False
		if self._events is not None and change.event not in self._events:
			return False
		if self._filter is None:
			return True
		if callable(self._filter):
			return bool(self._filter(change.row))
		return all(change.row.get(key) == value for key, value in self._filter.items())

	async def deliver(self, change: ChangeEvent) -> None:
		try:
			result = self._handler(change)
			if result is not None:
				await result
		except Exception:
			obs_metrics.inc_changefeed_delivery(change.topic, change.event, "error")
			logger.exception(
				"change handler failed",
				extra={"topic": change.topic, "event": change.event},
			)
			return
		obs_metrics.inc_changefeed_delivery(change.topic, change.event, "ok")

	def unsubscribe(self) -> None:
		if not self.active:
			return
		self.active = False
		self._feed._remove(self)

	def __enter__(self) -> "Subscription":
		return self

	def __exit__(self, *exc_info) -> None:
		self.unsubscribe()


class ChangeFeed:
	def __init__(self) -> None:
		self._subscriptions: Dict[str, List[Subscription]] = {}

	def subscribe(
		self,
		topic: str,
		handler: Handler,
		*,
		events: Optional[Iterable[str]] = None,
		filter: Optional[RowFilter] = None,  # noqa: A002 (mirrors the realtime api)
	) -> Subscription:
		wanted = frozenset(events) if events is not None else None
		if wanted is not None and not wanted <= EVENTS:
			raise ValueError(f"unknown change events: {sorted(wanted - EVENTS)}")
		subscription = Subscription(self, topic, handler, wanted, filter)
		self._subscriptions.setdefault(topic, []).append(subscription)
		return subscription

	def subscriber_count(self, topic: Optional[str] = None) -> int:
		if topic is not None:
			return len(self._subscriptions.get(topic, ()))
		return sum(len(subs) for subs in self._subscriptions.values())

	async def publish(self, topic: str, event: str, row: Mapping[str, Any]) -> None:
		"""Deliver to every matching subscription in subscription order."""
		change = ChangeEvent(topic=topic, event=event, row=dict(row))
		for subscription in list(self._subscriptions.get(topic, ())):
			if subscription.matches(change):
				await subscription.deliver(change)

	def _remove(self, subscription: Subscription) -> None:
		subs = self._subscriptions.get(subscription.topic)
		if not subs:
			return
		try:
			subs.remove(subscription)
		except ValueError:
			return
		if not subs:
			self._subscriptions.pop(subscription.topic, None)
