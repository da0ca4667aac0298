"""Domain models for user profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from textly.infra.datastore import optional_str, parse_timestamp

FALLBACK_USERNAME = "Usuario"


@dataclass(slots=True)
class Profile:
    """Display projection of a user: public profile merged with auth metadata."""

    id: str
    username: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Profile":
        return cls(
            id=str(record["id"]),
            username=str(record.get("username") or FALLBACK_USERNAME),
            email=optional_str(record.get("email")),
            avatar_url=optional_str(record.get("avatar_url")),
        )

    def to_cache(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "avatar_url": self.avatar_url,
        }


@dataclass(slots=True)
class PublicProfile:
    """Row of the public ``profiles`` table."""

    id: str
    email: Optional[str]
    username: Optional[str]
    created_at: datetime
    avatar_url: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "PublicProfile":
        return cls(
            id=str(record["id"]),
            email=optional_str(record.get("email")),
            username=optional_str(record.get("username")),
            created_at=parse_timestamp(record["created_at"]),
            avatar_url=optional_str(record.get("avatar_url")),
        )


@dataclass(slots=True)
class ProfileMatch:
    """Username search hit, enriched with the avatar from auth metadata."""

    id: str
    email: Optional[str]
    username: Optional[str]
    created_at: datetime
    avatar_url: Optional[str] = None


@dataclass(slots=True)
class AuthUser:
    """Auth-provider record of a user."""

    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "AuthUser":
        metadata = record.get("user_metadata") or {}
        return cls(
            id=str(record["id"]),
            email=optional_str(record.get("email")),
            user_metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


@dataclass(slots=True, frozen=True)
class UserMeta:
    """One entry of the metadata batch: display name and avatar."""

    id: str
    nombre: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
