"""Domain-level exceptions for chat messages."""

from __future__ import annotations


class MessageError(Exception):
    """Base class for message errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class MessageSendFailed(MessageError):
    reason = "send_failed"
