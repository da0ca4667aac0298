"""Domain-level exceptions for friend requests."""

from __future__ import annotations


class FriendshipError(Exception):
    """Base class for friendship feature errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class FriendRequestFailed(FriendshipError):
    reason = "request_failed"


class RequestNotFound(FriendshipError):
    """No pending request with that id has the caller as receiver."""

    reason = "not_found"


class RequestNotCancellable(FriendshipError):
    """No pending request with that id has the caller as sender."""

    reason = "not_cancellable"
