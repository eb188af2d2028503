"""Correlated request/response channel to the page-bound retailer script.

The retailer session is only reachable from a script living inside the
retailer's page. That script keeps a persistent connection open to us; we
send it request envelopes ``{action, ...params, id}`` and it answers with
``{id, result}`` or ``{id, error}``. Connections come and go as pages load,
reload and close, so every round trip has a timeout and every request
still waiting on a connection that closes is failed immediately.

All state is confined to the event loop thread that owns the channel.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, Protocol, TypeVar

import pydantic

from receiptsync.errors import (
    ChannelClosedError,
    ChannelNotConnectedError,
    ChannelTimeoutError,
    ChannelUnavailableError,
    RemoteError,
    UnknownActionError,
)
from receiptsync.logging_config import get_logger
from receiptsync.models import RecordSummary

logger = get_logger("channel")

T = TypeVar("T")

UNKNOWN_ACTION_PREFIX = "Unknown action:"


class ChannelConnection(Protocol):
    """A live link to one page-bound script."""

    async def send(self, message: dict[str, Any]) -> None: ...


# resolves the context (tab) hosting the retailer script, None if not open
ContextLocator = Callable[[], Awaitable[str | None]]


# Request kinds


class ChannelRequest(Generic[T]):
    action: ClassVar[str]

    def to_params(self) -> dict[str, Any]:
        return {}

    def parse_result(self, raw: Any) -> T:
        return raw

    def to_envelope(self, request_id: str) -> dict[str, Any]:
        return {"action": self.action, **self.to_params(), "id": request_id}


@dataclass(frozen=True)
class FetchRecords(ChannelRequest[list[RecordSummary]]):
    """List receipts between two ISO dates (inclusive)."""

    action: ClassVar[str] = "fetchRecords"

    start_date: str
    end_date: str

    def to_params(self) -> dict[str, Any]:
        return {"startDate": self.start_date, "endDate": self.end_date}

    def parse_result(self, raw: Any) -> list[RecordSummary]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise RemoteError("Unexpected receipt list from the retailer page")
        return [_parse_summary(entry) for entry in raw]


def _parse_summary(entry: Any) -> RecordSummary:
    # a bad entry keeps its slot so it is counted as a failed fetch
    if not isinstance(entry, dict):
        return RecordSummary()
    try:
        return RecordSummary.model_validate(entry)
    except pydantic.ValidationError as e:
        logger.warning("unusable listing entry: %d error(s)", e.error_count())
        return RecordSummary()


@dataclass(frozen=True)
class FetchRecordDetail(ChannelRequest[dict[str, Any] | None]):
    action: ClassVar[str] = "fetchRecordDetail"

    transaction_barcode: str

    def to_params(self) -> dict[str, Any]:
        return {"transactionBarcode": self.transaction_barcode}

    def parse_result(self, raw: Any) -> dict[str, Any] | None:
        return raw if isinstance(raw, dict) and raw else None


@dataclass(frozen=True)
class CheckLogin(ChannelRequest[bool]):
    action: ClassVar[str] = "checkLogin"

    def parse_result(self, raw: Any) -> bool:
        return bool(isinstance(raw, dict) and raw.get("loggedIn"))


@dataclass(frozen=True)
class Ping(ChannelRequest[bool]):
    action: ClassVar[str] = "ping"

    def parse_result(self, raw: Any) -> bool:
        return bool(isinstance(raw, dict) and raw.get("pong"))


@dataclass
class _Pending:
    context_id: str
    connection: ChannelConnection
    action: str
    future: asyncio.Future


def _error_from_response(message: str) -> Exception:
    if message.startswith(UNKNOWN_ACTION_PREFIX):
        action = message[len(UNKNOWN_ACTION_PREFIX) :].strip()
        return UnknownActionError(action or None)
    return RemoteError(message)


class RemoteChannel:
    """Registry of per-context connections plus a pending-request table.

    Usage:
        channel = RemoteChannel(locate_context=find_retailer_tab)
        channel.register("tab-7", connection)
        receipts = await channel.call(FetchRecords("2024-01-01", "2024-03-31"))
        # transport feeds responses back in:
        channel.dispatch({"id": "...", "result": [...]})
    """

    def __init__(
        self,
        locate_context: ContextLocator,
        timeout: float | None = 30.0,
    ) -> None:
        self._locate_context = locate_context
        self.timeout = timeout
        self._connections: dict[str, ChannelConnection] = {}
        self._pending: dict[str, _Pending] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_registered(self, context_id: str) -> bool:
        return context_id in self._connections

    def register(self, context_id: str, connection: ChannelConnection) -> None:
        """Attach a connection for a context; replaces any previous one."""
        if context_id in self._connections:
            logger.debug("replacing connection for context %s", context_id)
        self._connections[context_id] = connection
        logger.info("retailer script connected: context=%s", context_id)

    def unregister(
        self, context_id: str, connection: ChannelConnection
    ) -> int:
        """Drop a closed connection and fail everything still waiting on it.

        The registry entry is only removed if it still points at
        ``connection``; a newer registration for the same context survives.

        Returns:
            Number of pending requests that were rejected
        """
        if self._connections.get(context_id) is connection:
            del self._connections[context_id]
            logger.info("retailer script disconnected: context=%s", context_id)

        orphaned = [
            rid
            for rid, pending in self._pending.items()
            if pending.connection is connection
        ]
        for rid in orphaned:
            pending = self._pending.pop(rid)
            if not pending.future.done():
                pending.future.set_exception(ChannelClosedError())
        if orphaned:
            logger.warning(
                "rejected %d pending request(s) for context %s",
                len(orphaned),
                context_id,
            )
        return len(orphaned)

    async def locate(self) -> str | None:
        return await self._locate_context()

    async def call(
        self,
        request: ChannelRequest[T],
        timeout: float | None = None,
    ) -> T:
        """Send a request to the retailer script and await its answer.

        Raises:
            ChannelUnavailableError: No retailer page is open
            ChannelNotConnectedError: Page open, script not attached
            ChannelTimeoutError: No answer within the timeout
            ChannelClosedError: Connection dropped while waiting
            RemoteError / UnknownActionError: Script reported an error
        """
        if timeout is None:
            timeout = self.timeout

        context_id = await self._locate_context()
        if context_id is None:
            raise ChannelUnavailableError()

        connection = self._connections.get(context_id)
        if connection is None:
            raise ChannelNotConnectedError()

        request_id = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = _Pending(
            context_id=context_id,
            connection=connection,
            action=request.action,
            future=future,
        )

        try:
            await connection.send(request.to_envelope(request_id))
            raw = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "timeout waiting for %s (request %s)",
                request.action,
                request_id,
            )
            raise ChannelTimeoutError(request.action, timeout or 0) from None
        finally:
            self._pending.pop(request_id, None)

        return request.parse_result(raw)

    def dispatch(self, message: dict[str, Any]) -> bool:
        """Settle the pending request a response envelope belongs to.

        Returns:
            True if the message matched a pending request
        """
        request_id = message.get("id") if isinstance(message, dict) else None
        pending = self._pending.get(request_id) if request_id else None
        if pending is None:
            logger.debug("ignoring response with unknown id %s", request_id)
            return False

        if pending.future.done():
            return False

        error = message.get("error")
        if error:
            pending.future.set_exception(_error_from_response(str(error)))
        else:
            pending.future.set_result(message.get("result"))
        return True
