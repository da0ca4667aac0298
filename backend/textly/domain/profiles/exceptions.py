"""Domain-level exceptions for profile lookups."""

from __future__ import annotations


class ProfileError(Exception):
    """Base class for profile lookup errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class MetadataRateLimited(ProfileError):
    """The metadata endpoint answered 429; retry after ``retry_after`` seconds."""

    reason = "rate_limited"

    def __init__(self, retry_after: float) -> None:
        super().__init__()
        self.retry_after = retry_after
