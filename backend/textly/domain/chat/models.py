"""Domain models for room messages."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping

from textly.infra.datastore import parse_timestamp


class MessageState(str, enum.Enum):
    """Load state of the active room's message list."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    INVALIDATED = "invalidated"


@dataclass(slots=True, frozen=True)
class Message:
    id: str
    room_id: str
    sender_id: str
    content: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Message":
        return cls(
            id=str(record["id"]),
            room_id=str(record["room_id"]),
            sender_id=str(record["sender_id"]),
            content=str(record["content"]),
            created_at=parse_timestamp(record["created_at"]),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "created_at": self.created_at,
        }

    def to_cache(self) -> Dict[str, Any]:
        row = self.to_row()
        row["created_at"] = self.created_at.isoformat()
        return row

    def sort_key(self) -> tuple[datetime, str]:
        return (self.created_at, self.id)
