"""Domain models for participant-pair rooms."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Literal, Mapping, Optional

from textly.infra.datastore import optional_str, parse_timestamp


JoinFailure = Literal["room_not_found", "already_creator", "room_full"]


@dataclass(slots=True)
class Room:
    """A chat room between participant_1 (creator) and an optional participant_2."""

    id: str
    participant_1: str
    share_code: str
    created_at: datetime
    room_name: Optional[str] = None
    participant_2: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Room":
        return cls(
            id=str(record["id"]),
            participant_1=str(record["participant_1"]),
            share_code=str(record["share_code"]),
            created_at=parse_timestamp(record["created_at"]),
            room_name=record.get("room_name"),
            participant_2=optional_str(record.get("participant_2")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "room_name": self.room_name,
            "participant_1": self.participant_1,
            "participant_2": self.participant_2,
            "share_code": self.share_code,
            "created_at": self.created_at,
        }

    def to_cache(self) -> Dict[str, Any]:
        row = self.to_row()
        row["created_at"] = self.created_at.isoformat()
        return row

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.participant_1, self.participant_2)

    def counterpart_of(self, user_id: str) -> Optional[str]:
        if self.participant_1 == user_id:
            return self.participant_2
        if self.participant_2 == user_id:
            return self.participant_1
        return None

    def is_full(self) -> bool:
        return self.participant_2 is not None


@dataclass(slots=True, frozen=True)
class JoinResult:
    success: bool
    room: Optional[Room] = None
    error: Optional[JoinFailure] = None

    @classmethod
    def ok(cls, room: Room) -> "JoinResult":
        return cls(success=True, room=room)

    @classmethod
    def failed(cls, error: JoinFailure) -> "JoinResult":
        return cls(success=False, error=error)
