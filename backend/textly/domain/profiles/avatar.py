"""Avatar URL normalization shared by the metadata endpoint and the resolver."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

AVATAR_METADATA_KEYS = ("avatar_url", "picture", "avatar", "imagen")

_DATA_IMAGE = re.compile(r"^data:image/[a-z0-9.+-]+;base64,", re.IGNORECASE)
_PLACEHOLDERS = frozenset({"null", "undefined"})


def normalize_avatar_url(value: Any) -> Optional[str]:
	"""Return a usable avatar URL or None.

	Accepts absolute http(s) URLs and base64 ``data:image/...`` URIs;
	protocol-relative ``//host/...`` URLs are upgraded to https.
	"""
	if not isinstance(value, str):
		return None
	raw = value.strip()
	if not raw or raw.lower() in _PLACEHOLDERS:
		return None
	if raw.startswith("//"):
		raw = f"https:{raw}"
	if _DATA_IMAGE.match(raw):
		return raw
	parts = urlsplit(raw)
	if parts.scheme.lower() in ("http", "https") and parts.netloc:
		return raw
	return None


def pick_avatar_from_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
	if not metadata:
		return None
	for key in AVATAR_METADATA_KEYS:
		normalized = normalize_avatar_url(metadata.get(key))
		if normalized:
			return normalized
	return None
