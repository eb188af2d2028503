"""Retailer-side peer: answers channel requests from inside the page.

The peer owns the retailer session. It never hands the retailer token to
the coordinator; it only returns receipt data. Talking to the retailer
API itself is delegated to a :class:`RetailerBackend`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import socketio

from receiptsync.channel import RemoteChannel
from receiptsync.errors import ChannelClosedError, UnknownActionError
from receiptsync.logging_config import get_logger

logger = get_logger("peer")

COUNTERPART_NAMESPACE = "/counterpart"


class RetailerBackend(Protocol):
    async def list_receipts(
        self, start_date: str, end_date: str
    ) -> list[dict[str, Any]]:
        """Receipts in range; dates in the retailer's MM/DD/YYYY format."""
        ...

    async def fetch_receipt(self, barcode: str) -> dict[str, Any] | None: ...

    def is_logged_in(self) -> bool: ...


def to_counterpart_date(iso_date: str) -> str:
    """Convert ``YYYY-MM-DD`` to the retailer's ``MM/DD/YYYY``."""
    year, month, day = iso_date.split("-")
    return f"{month}/{day}/{year}"


class CounterpartAgent:
    """Dispatches request envelopes to the retailer backend."""

    def __init__(self, backend: RetailerBackend) -> None:
        self.backend = backend

    async def _run(self, message: dict[str, Any]) -> Any:
        action = message.get("action")
        if action == "fetchRecords":
            return await self.backend.list_receipts(
                to_counterpart_date(message["startDate"]),
                to_counterpart_date(message["endDate"]),
            )
        if action == "fetchRecordDetail":
            return await self.backend.fetch_receipt(
                message["transactionBarcode"]
            )
        if action == "checkLogin":
            return {"loggedIn": self.backend.is_logged_in()}
        if action == "ping":
            return {"pong": True}
        raise UnknownActionError(action)

    async def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        """Answer one envelope with ``{id, result}`` or ``{id, error}``."""
        request_id = message.get("id")
        try:
            result = await self._run(message)
        except Exception as e:
            logger.warning("%s failed: %s", message.get("action"), e)
            return {"id": request_id, "error": str(e) or type(e).__name__}
        return {"id": request_id, "result": result}


class InProcessConnection:
    """Channel connection to a peer living in the same event loop."""

    def __init__(self, agent: CounterpartAgent, channel: RemoteChannel):
        self.agent = agent
        self.channel = channel
        self.closed = False
        self._tasks: set[asyncio.Task] = set()

    async def send(self, message: dict[str, Any]) -> None:
        if self.closed:
            raise ChannelClosedError()
        task = asyncio.create_task(self._answer(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _answer(self, message: dict[str, Any]) -> None:
        response = await self.agent.handle(message)
        if not self.closed:
            self.channel.dispatch(response)


class PeerClient:
    """Socket.IO client that serves a CounterpartAgent to the coordinator.

    Usage:
        client = PeerClient(agent, url="http://127.0.0.1:8765",
                            context_id="tab-1")
        await client.connect()
        ...
        await client.close()  # page unload
    """

    def __init__(
        self,
        agent: CounterpartAgent,
        url: str,
        context_id: str,
    ) -> None:
        self.agent = agent
        self.url = url
        self.context_id = context_id
        self._sio = socketio.AsyncClient(logger=False, engineio_logger=False)
        self._sio.on(
            "request", self._on_request, namespace=COUNTERPART_NAMESPACE
        )

    @property
    def connected(self) -> bool:
        return self._sio.connected

    async def connect(self, timeout: int = 5) -> None:
        await self._sio.connect(
            self.url,
            namespaces=[COUNTERPART_NAMESPACE],
            auth={"contextId": self.context_id},
            wait_timeout=timeout,
        )
        logger.info("peer attached: context=%s", self.context_id)

    async def detach(self) -> None:
        """Drop the connection but keep the page known (script reload)."""
        if self._sio.connected:
            await self._sio.disconnect()

    async def close(self) -> None:
        """Tell the coordinator the page is gone, then disconnect."""
        if self._sio.connected:
            await self._sio.emit(
                "closed", {}, namespace=COUNTERPART_NAMESPACE
            )
            await self._sio.disconnect()

    async def _on_request(self, data: dict[str, Any]) -> None:
        response = await self.agent.handle(data)
        await self._sio.emit(
            "response", response, namespace=COUNTERPART_NAMESPACE
        )
