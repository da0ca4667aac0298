"""Domain-level exceptions for rooms."""

from __future__ import annotations


class RoomError(Exception):
    """Base class for room feature errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class RoomDeleted(RoomError):
    """The room no longer exists (deleted by the other participant)."""

    reason = "room_deleted"

    def __init__(self, room_id: str | None = None) -> None:
        super().__init__()
        self.room_id = room_id


class RoomCreateFailed(RoomError):
    reason = "create_failed"
