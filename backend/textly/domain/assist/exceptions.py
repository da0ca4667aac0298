"""Domain-level exceptions for the writing assistant."""

from __future__ import annotations


class AssistError(Exception):
    """Base class for assistant errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class AssistUnavailable(AssistError):
    """The assistant is disabled in the caller's preferences."""

    reason = "assistant_disabled"


class AssistRateLimited(AssistError):
    reason = "rate_limited"

    def __init__(self, retry_after: float) -> None:
        super().__init__()
        self.retry_after = retry_after


class AssistProviderError(AssistError):
    """The language model or the endpoint in front of it failed."""

    reason = "provider_error"

    def __init__(self, detail: str | None = None) -> None:
        Exception.__init__(self, detail or self.reason)
        self.detail = detail
