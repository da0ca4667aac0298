"""Authorization-gated profile metadata batch lookup."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from textly.api.errors import INTERNAL_ERROR, INVALID_PAYLOAD
from textly.api.deps import get_datastore
from textly.domain.profiles import service
from textly.domain.profiles.schemas import UserMetaOut, UsersMetaRequest, UsersMetaResponse
from textly.infra import rate_limit
from textly.infra.auth import authenticate_request
from textly.infra.datastore import Datastore, DatastoreError
from textly.infra.request import get_request_context
from textly.obs import security

logger = logging.getLogger(__name__)

router = APIRouter()

ROUTE = "/api/users/meta"


async def enforce_rate_limit(namespace: str, user_id: str, ip_hash: str) -> None:
	"""Shared 429 / misconfiguration handling for rate-limited routes."""
	try:
		await rate_limit.check_request_limit(namespace, user_id, ip_hash)
	except rate_limit.RateLimitExceeded as exc:
		security.log_security_event(
			security.RATE_LIMITED,
			{"user_id": user_id, "retry_after": exc.retry_after, "namespace": namespace},
		)
		raise HTTPException(
			status.HTTP_429_TOO_MANY_REQUESTS,
			detail="too_many_requests",
			headers={"Retry-After": str(exc.retry_after)},
		) from None
	except rate_limit.RateLimiterMisconfigured:
		security.log_security_event(
			security.CONFIG_ERROR,
			{"reason": "rate_limiter_unavailable", "namespace": namespace},
			level=logging.ERROR,
		)
		raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INTERNAL_ERROR) from None


async def _read_json(request: Request) -> object:
	try:
		return await request.json()
	except (json.JSONDecodeError, UnicodeDecodeError):
		return None


@router.post(ROUTE, response_model=UsersMetaResponse, response_model_by_alias=True)
async def users_meta(
	request: Request,
	datastore: Datastore = Depends(get_datastore),
) -> UsersMetaResponse:
	context = get_request_context(request)
	user = await authenticate_request(request)
	await enforce_rate_limit(rate_limit.USERS_META, user.id, context.ip_hash)
	try:
		payload = UsersMetaRequest.model_validate(await _read_json(request))
	except ValidationError:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=INVALID_PAYLOAD) from None

	try:
		lookup = await service.lookup_user_meta(datastore, user.id, (str(uid) for uid in payload.ids))
	except DatastoreError as exc:
		security.log_security_event(
			security.IMPROVE_ERROR,
			{"stage": "lookup", "user_id": user.id, "error": exc.reason},
			level=logging.ERROR,
		)
		raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INTERNAL_ERROR) from None

	if lookup.rejected:
		security.log_security_event(
			security.META_UNAUTHORIZED_IDS,
			{"user_id": user.id, "requested": lookup.requested, "rejected": lookup.rejected},
		)
	return UsersMetaResponse(
		users=[
			UserMetaOut(id=meta.id, email=meta.email, nombre=meta.nombre, avatar_url=meta.avatar_url)
			for meta in lookup.users
		]
	)
