"""Per-request client context: request id and hashed client address."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from fastapi import Request

UNKNOWN_IP = "unknown"
IP_HASH_LENGTH = 24


@dataclass(slots=True, frozen=True)
class RequestContext:
	request_id: str
	client_ip: str
	ip_hash: str


def hash_ip(ip: str) -> str:
	return hashlib.sha256(ip.encode("utf-8")).hexdigest()[:IP_HASH_LENGTH]


def client_ip_from_headers(headers, fallback: Optional[str] = None) -> str:
	"""First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
	forwarded = headers.get("x-forwarded-for")
	if forwarded:
		first = forwarded.split(",")[0].strip()
		if first:
			return first
	real_ip = (headers.get("x-real-ip") or "").strip()
	if real_ip:
		return real_ip
	return fallback or UNKNOWN_IP


def build_request_context(request: Request) -> RequestContext:
	request_id = (request.headers.get("x-request-id") or "").strip() or str(uuid4())
	peer = request.client.host if request.client else None
	client_ip = client_ip_from_headers(request.headers, peer)
	return RequestContext(request_id=request_id, client_ip=client_ip, ip_hash=hash_ip(client_ip))


def get_request_context(request: Request) -> RequestContext:
	"""FastAPI dependency returning the context bound by the middleware."""
	context = getattr(request.state, "request_context", None)
	if context is None:
		context = build_request_context(request)
		request.state.request_context = context
	return context
