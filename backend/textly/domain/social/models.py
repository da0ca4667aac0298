"""Domain models for friendships."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping

from textly.infra.datastore import parse_timestamp


class FriendshipStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


ACTIVE_STATUSES = frozenset({FriendshipStatus.PENDING, FriendshipStatus.ACCEPTED})


@dataclass(slots=True, frozen=True)
class Friendship:
    id: str
    sender_id: str
    receiver_id: str
    status: FriendshipStatus
    created_at: datetime

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Friendship":
        return cls(
            id=str(record["id"]),
            sender_id=str(record["sender_id"]),
            receiver_id=str(record["receiver_id"]),
            status=FriendshipStatus(str(record["status"])),
            created_at=parse_timestamp(record["created_at"]),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "status": self.status.value,
            "created_at": self.created_at,
        }

    @property
    def is_pending(self) -> bool:
        return self.status is FriendshipStatus.PENDING

    def other_party(self, user_id: str) -> str:
        return self.receiver_id if self.sender_id == user_id else self.sender_id
