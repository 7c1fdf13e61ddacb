"""Error taxonomy for the realtime delivery core."""

from __future__ import annotations

from enum import Enum


class RealtimeError(Exception):
    """Base class for realtime delivery errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class AuthError(RealtimeError):
    """Bad, expired or missing bearer token, or the user no longer exists."""

    reason = "unauthorized"


class AuthorizationError(RealtimeError):
    reason = "not_participant"


class PersistenceError(RealtimeError):
    """The backing store could not complete an operation."""

    reason = "store_unavailable"


class DropReason(str, Enum):
    """Why an inbound event was discarded without side effects."""

    CHAT_NOT_FOUND = "chat_not_found"
    NOT_PARTICIPANT = "not_participant"
    INVALID_REPLY = "invalid_reply"
    INVALID_PAYLOAD = "invalid_payload"
    RATE_LIMITED = "rate_limited"


class NotFoundError(RealtimeError):
    reason = "not_found"
