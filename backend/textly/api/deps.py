"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from textly.domain.assist.provider import TextModel
from textly.infra.datastore import Datastore


def get_datastore(request: Request) -> Datastore:
	return request.app.state.datastore


def get_text_model(request: Request) -> Optional[TextModel]:
	return getattr(request.app.state, "text_model", None)
