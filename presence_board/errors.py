"""Exception types raised by the presence board service."""

from __future__ import annotations


class PresenceError(Exception):
    """Base class for errors that carry a stable error code."""

    code = "error"

    def __init__(self, detail: str | None = None, *, code: str | None = None) -> None:
        if code:
            self.code = code
        self.detail = detail or self.code
        super().__init__(self.detail)

    @property
    def error(self) -> str:
        """Error category; ``code`` may be more specific."""

        return type(self).code


class UnauthorizedError(PresenceError):
    code = "unauthorized"


class ForbiddenError(PresenceError):
    code = "forbidden"


class InvalidPayloadError(PresenceError):
    """Raised when a client payload cannot be decoded or validated."""

    code = "invalid_request"


class UnknownActionError(PresenceError):
    code = "unknown_action"

    def __init__(self, action: str | None) -> None:
        super().__init__(f"unknown action: {action!r}")
        self.action = action


class StoreError(PresenceError):
    """Raised when the backing record store rejects a read or write."""

    code = "store_error"


class CacheStoreError(PresenceError):
    """Raised by cache backends. Never reaches a client."""

    code = "cache_error"


__all__ = [
    "PresenceError",
    "UnauthorizedError",
    "ForbiddenError",
    "InvalidPayloadError",
    "UnknownActionError",
    "StoreError",
    "CacheStoreError",
]
