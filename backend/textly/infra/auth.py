"""Authentication helpers for FastAPI endpoints.

Bearer JWTs (HS256, settings.secret_key) are required everywhere; development
environments additionally accept an ``X-User-Id`` header for local tools.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError

from textly.infra import jwt as jwt_helper
from textly.obs import logging as obs_logging
from textly.obs import security
from textly.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	email: Optional[str] = None
	display_name: Optional[str] = None
	avatar_url: Optional[str] = None
	session_id: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(reason: str) -> HTTPException:
	security.log_security_event(security.AUTH_FAIL, {"reason": reason})
	return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


def _optional_claim(payload: dict[str, object], *names: str) -> Optional[str]:
	for name in names:
		value = payload.get(name)
		if value is not None and str(value).strip():
			return str(value).strip()
	return None


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		payload = jwt_helper.decode_access(token)
	except PyJWTError:
		# Normalise all decode failures to one reason for the API surface
		raise _unauthorized("invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise _unauthorized("invalid_token")
	return AuthenticatedUser(
		id=sub,
		email=_optional_claim(payload, "email"),
		display_name=_optional_claim(payload, "name", "full_name"),
		avatar_url=_optional_claim(payload, "avatar_url"),
		session_id=_optional_claim(payload, "sid"),
	)


async def authenticate_request(request: Request) -> AuthenticatedUser:
	"""Authenticate from raw headers so routes can choose when auth runs."""
	credentials = await _bearer_scheme(request)
	return await get_current_user(request.headers.get("X-User-Id"), credentials)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user or raise 401 with an ``auth_fail`` event."""
	if credentials and credentials.scheme.lower() == "bearer":
		user = verify_access_jwt(credentials.credentials)
		obs_logging.bind_context(user_id=user.id)
		return user

	# In dev only, allow X-User-Id fallback for local tools
	if settings.is_dev() and x_user_id and x_user_id.strip():
		user = AuthenticatedUser(id=x_user_id.strip())
		obs_logging.bind_context(user_id=user.id)
		return user

	raise _unauthorized("missing_credentials")
