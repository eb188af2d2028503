"""Error taxonomy for the sync core.

Every failure raised inside receiptsync is a :class:`SyncError` subclass
with a fixed :class:`ErrorKind`. Callers at the control surface turn them
into ``{"kind": ..., "message": ...}`` dicts via :meth:`SyncError.to_dict`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar


class ErrorKind(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    NETWORK_ERROR = "network_error"
    SESSION_EXPIRED = "session_expired"
    CHANNEL_UNAVAILABLE = "channel_unavailable"
    CHANNEL_NOT_CONNECTED = "channel_not_connected"
    CHANNEL_CLOSED = "channel_closed"
    CHANNEL_TIMEOUT = "channel_timeout"
    REMOTE_ERROR = "remote_error"
    UNKNOWN_ACTION = "unknown_action"
    PER_RECORD_FETCH_FAILURE = "per_record_fetch_failure"
    ALL_FETCHES_FAILED = "all_fetches_failed"
    VALIDATION_ERROR = "validation_error"
    SERVER_ERROR = "server_error"
    ALREADY_IN_PROGRESS = "already_in_progress"
    AUTHORIZATION_FAILED = "authorization_failed"
    INTERNAL_ERROR = "internal_error"


class SyncError(Exception):
    """Base class for all receiptsync failures."""

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL_ERROR
    default_message: ClassVar[str] = "Unexpected error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}


class NotAuthenticatedError(SyncError):
    kind = ErrorKind.NOT_AUTHENTICATED
    default_message = (
        "Not connected to the inventory service. Please connect your account."
    )


class NetworkError(SyncError):
    """Transport-level failure. Never proof of an invalid credential."""

    kind = ErrorKind.NETWORK_ERROR
    default_message = (
        "Network error. Please check your connection and try again."
    )


class SessionExpiredError(SyncError):
    kind = ErrorKind.SESSION_EXPIRED
    default_message = "Session expired. Please reconnect your account."


class ChannelUnavailableError(SyncError):
    kind = ErrorKind.CHANNEL_UNAVAILABLE
    default_message = "Please open the retailer site in a browser tab."


class ChannelNotConnectedError(SyncError):
    kind = ErrorKind.CHANNEL_NOT_CONNECTED
    default_message = (
        "Could not connect to the retailer page. Please refresh the page."
    )


class ChannelClosedError(SyncError):
    kind = ErrorKind.CHANNEL_CLOSED
    default_message = "Connection to the retailer page was lost."


class ChannelTimeoutError(SyncError):
    kind = ErrorKind.CHANNEL_TIMEOUT

    def __init__(self, action: str, timeout: float) -> None:
        self.action = action
        self.timeout = timeout
        super().__init__(
            f"Retailer page did not answer {action!r} within {timeout:g}s."
        )


class RemoteError(SyncError):
    """Error reported by the page-bound peer in a response envelope."""

    kind = ErrorKind.REMOTE_ERROR


class UnknownActionError(SyncError):
    kind = ErrorKind.UNKNOWN_ACTION

    def __init__(self, action: str | None) -> None:
        self.action = action
        super().__init__(f"Unknown action: {action}")


class PerRecordFetchFailure(SyncError):
    """A single record could not be fetched. Collected, never raised."""

    kind = ErrorKind.PER_RECORD_FETCH_FAILURE

    def __init__(self, record_id: str, reason: str | None = None) -> None:
        self.record_id = record_id
        self.reason = reason
        msg = f"Failed to fetch record {record_id}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class AllFetchesFailedError(SyncError):
    kind = ErrorKind.ALL_FETCHES_FAILED

    def __init__(self, failed_ids: list[str]) -> None:
        self.failed_ids = list(failed_ids)
        super().__init__(
            f"Failed to fetch details for all {len(self.failed_ids)} "
            "receipt(s). The retailer may be experiencing issues. "
            "Please try again later."
        )


class ValidationError(SyncError):
    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, detail: str, status: int = 422) -> None:
        self.detail = detail
        self.status = status
        super().__init__(f"Validation failed: {detail}")


class ServerError(SyncError):
    kind = ErrorKind.SERVER_ERROR

    def __init__(self, status: int, detail: str | None = None) -> None:
        self.status = status
        self.detail = detail
        super().__init__(detail or f"Server error: {status}")


class AlreadyInProgressError(SyncError):
    kind = ErrorKind.ALREADY_IN_PROGRESS
    default_message = (
        "A sync is already in progress. Please wait for it to finish."
    )


class AuthorizationError(SyncError):
    kind = ErrorKind.AUTHORIZATION_FAILED
    default_message = "Authorization failed"
