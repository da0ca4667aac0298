"""Structured security event log lines for the API routes."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from textly.obs import logging as obs_logging
from textly.obs import metrics as obs_metrics

logger = logging.getLogger("textly.security")

AUTH_FAIL = "auth_fail"
RATE_LIMITED = "rate_limited"
META_UNAUTHORIZED_IDS = "meta_unauthorized_ids"
CONFIG_ERROR = "config_error"
IMPROVE_ERROR = "improve_error"


def log_security_event(
	event: str,
	fields: Optional[Mapping[str, Any]] = None,
	*,
	level: int = logging.WARNING,
) -> None:
	"""Emit one JSON log line for a security event.

	Request id, route and hashed client IP come from the bound log context,
	so callers pass only event-specific fields. Raw IPs must never be passed.
	"""
	extra: dict[str, Any] = {"security_event": True, "event": event}
	extra.update(obs_logging.context_fields())
	if fields:
		for key, value in fields.items():
			extra.setdefault(key, value)
	logger.log(level, event, extra=extra)
	obs_metrics.inc_security_event(event)


__all__ = [
	"AUTH_FAIL",
	"CONFIG_ERROR",
	"IMPROVE_ERROR",
	"META_UNAUTHORIZED_IDS",
	"RATE_LIMITED",
	"log_security_event",
]
