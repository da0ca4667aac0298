"""Pydantic schemas for the profile metadata endpoint."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

MAX_META_IDS = 50


class UsersMetaRequest(BaseModel):
    ids: List[UUID] = Field(min_length=1, max_length=MAX_META_IDS)


class UserMetaOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: Optional[str] = None
    nombre: str
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")


class UsersMetaResponse(BaseModel):
    users: List[UserMetaOut]
