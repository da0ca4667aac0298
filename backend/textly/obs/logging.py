"""JSON log lines with request-scoped context (request id, route, user, hashed IP)."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from textly.settings import settings

_LOGGER_NAME = "textly"

CONTEXT_KEYS = ("request_id", "route", "user_id", "ip_hash")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("textly_log_context", default=_EMPTY)

_REDACTED_KEYS = (
	"token",
	"secret",
	"authorization",
	"password",
	"email",
	"payload",
	"body",
	"prompt",
	"content",
)
_MAX_STRING = 256
_MAX_ITEMS = 10

# Attributes every LogRecord carries; anything else on a record came from ``extra``.
_STANDARD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Layer request fields over the current context; pass the token to reset_context()."""
	unknown = set(fields) - set(CONTEXT_KEYS)
	if unknown:
		raise TypeError(f"unknown log context fields: {sorted(unknown)}")
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value is not None})
	return _CONTEXT.set(MappingProxyType(merged))


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def context_fields() -> Dict[str, str]:
	return {key: value for key, value in _CONTEXT.get().items() if value}


def _redact(key: str, value: Any) -> Any:
	if any(word in key.lower() for word in _REDACTED_KEYS):
		return "[redacted]"
	return _clip(value)


def _clip(value: Any) -> Any:
	if isinstance(value, str):
		return value if len(value) <= _MAX_STRING else value[:_MAX_STRING] + "…"
	if isinstance(value, Mapping):
		items = list(value.items())
		clipped = {str(k): _redact(str(k), v) for k, v in items[:_MAX_ITEMS]}
		if len(items) > _MAX_ITEMS:
			clipped["…"] = f"+{len(items) - _MAX_ITEMS} keys"
		return clipped
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_clip(item) for item in value]
		return items if len(items) <= _MAX_ITEMS else items[:_MAX_ITEMS] + ["…"]
	return value


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per line: service identity, bound context, then ``extra`` fields."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		line: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		line.update(context_fields())
		if record.exc_info:
			line["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key in _STANDARD_ATTRS or key.startswith("_"):
				continue
			line[key] = _redact(key, value)
		return json.dumps(line, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a random share of INFO lines; other levels and security events always pass."""

	def __init__(self, rate: Optional[float] = None) -> None:
		super().__init__()
		configured = settings.obs_log_sampling_rate_info if rate is None else rate
		self.rate = min(1.0, max(0.0, configured))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or getattr(record, "security_event", False):
			return True
		return self.rate >= 1.0 or random.random() < self.rate


def configure_logging() -> logging.Logger:
	"""Install the JSON handler on the root logger."""
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers.clear()
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
