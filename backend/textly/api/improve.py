"""AI text transform: improve or translate a draft message."""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from textly.api.deps import get_datastore, get_text_model
from textly.api.errors import INTERNAL_ERROR, INVALID_PAYLOAD
from textly.api.users_meta import enforce_rate_limit
from textly.domain.assist.exceptions import AssistProviderError
from textly.domain.assist.models import AssistPreferences
from textly.domain.assist.prompts import build_prompt
from textly.domain.assist.provider import TextModel
from textly.domain.assist.schemas import ImproveRequest, ImproveResponse
from textly.infra import rate_limit
from textly.infra.auth import authenticate_request
from textly.infra.datastore import Datastore, DatastoreError
from textly.infra.request import get_request_context
from textly.obs import metrics as obs_metrics
from textly.obs import security

logger = logging.getLogger(__name__)

router = APIRouter()

ROUTE = "/api/improve"


@router.post(ROUTE, response_model=ImproveResponse, response_model_by_alias=True)
async def improve(
	request: Request,
	datastore: Datastore = Depends(get_datastore),
	model: Optional[TextModel] = Depends(get_text_model),
) -> ImproveResponse:
	context = get_request_context(request)
	try:
		body = await request.json()
	except (json.JSONDecodeError, UnicodeDecodeError):
		body = None
	try:
		payload = ImproveRequest.model_validate(body)
	except ValidationError:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=INVALID_PAYLOAD) from None

	user = await authenticate_request(request)
	await enforce_rate_limit(rate_limit.IMPROVE, user.id, context.ip_hash)

	if model is None:
		security.log_security_event(
			security.CONFIG_ERROR,
			{"reason": "missing_model_api_key"},
			level=logging.ERROR,
		)
		raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INTERNAL_ERROR)

	try:
		preferences = await datastore.preferences.get(user.id) or AssistPreferences()
	except DatastoreError as exc:
		security.log_security_event(
			security.IMPROVE_ERROR,
			{"stage": "load_settings", "user_id": user.id, "error": exc.reason},
			level=logging.ERROR,
		)
		preferences = AssistPreferences()

	if not preferences.assistant_enabled:
		obs_metrics.inc_assist_request(payload.action, "disabled")
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="assistant_disabled")

	prompt = build_prompt(payload.action, payload.text, preferences)
	try:
		output = await model.generate(prompt)
	except AssistProviderError as exc:
		obs_metrics.inc_assist_request(payload.action, "error")
		security.log_security_event(
			security.IMPROVE_ERROR,
			{"stage": "generate", "user_id": user.id, "error": str(exc), "model": getattr(model, "name", None)},
			level=logging.ERROR,
		)
		raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INTERNAL_ERROR) from None
	obs_metrics.inc_assist_request(payload.action, "ok")
	return ImproveResponse(output_text=(output or "").strip())
