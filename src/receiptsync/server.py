"""aiohttp + Socket.IO host for the coordinator.

- ``/counterpart`` Socket.IO namespace: retailer page scripts connect here
  with ``auth={"contextId": ...}`` and answer channel requests.
- ``/observer`` Socket.IO namespace: UIs receive ``progress`` events.
- ``/api/*`` HTTP routes: the control surface.

A context stays *known* after its socket drops until the peer says
``closed`` or another page attaches. That keeps "page open but script not
attached" (reload) apart from "no page open at all".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import socketio
from aiohttp import web

from receiptsync.auth_client import build_authorize_url
from receiptsync.channel import RemoteChannel
from receiptsync.config import SyncConfig
from receiptsync.credentials import CredentialStore
from receiptsync.errors import ChannelClosedError, ErrorKind
from receiptsync.logging_config import get_logger
from receiptsync.peer import COUNTERPART_NAMESPACE
from receiptsync.service import DEFAULT_REDIRECT_URI, SyncService

logger = get_logger("server")

OBSERVER_NAMESPACE = "/observer"

SERVICE_KEY = web.AppKey("service", SyncService)

_ERROR_STATUS: dict[str, int] = {
    ErrorKind.NOT_AUTHENTICATED.value: 401,
    ErrorKind.SESSION_EXPIRED.value: 401,
    ErrorKind.AUTHORIZATION_FAILED.value: 401,
    ErrorKind.ALREADY_IN_PROGRESS.value: 409,
    ErrorKind.NETWORK_ERROR.value: 502,
    ErrorKind.SERVER_ERROR.value: 502,
    ErrorKind.CHANNEL_TIMEOUT.value: 504,
    ErrorKind.INTERNAL_ERROR.value: 500,
}


@dataclass
class SocketConnection:
    """One Socket.IO session acting as a channel connection."""

    sio: socketio.AsyncServer
    sid: str

    async def send(self, message: dict[str, Any]) -> None:
        try:
            await self.sio.emit(
                "request", message, to=self.sid, namespace=COUNTERPART_NAMESPACE
            )
        except Exception as e:
            raise ChannelClosedError(f"send failed: {e}") from e


class CounterpartBridge:
    """Maps ``/counterpart`` sessions onto RemoteChannel registrations."""

    def __init__(self, sio: socketio.AsyncServer) -> None:
        self.sio = sio
        self.channel: RemoteChannel | None = None
        # insertion-ordered set of contexts with an open page
        self._known: dict[str, None] = {}
        self._sessions: dict[str, tuple[str, SocketConnection]] = {}

        sio.on("connect", self.on_connect, namespace=COUNTERPART_NAMESPACE)
        sio.on(
            "disconnect", self.on_disconnect, namespace=COUNTERPART_NAMESPACE
        )
        sio.on("response", self.on_response, namespace=COUNTERPART_NAMESPACE)
        sio.on("closed", self.on_closed, namespace=COUNTERPART_NAMESPACE)

    def attach(self, channel: RemoteChannel) -> None:
        self.channel = channel

    async def locate(self) -> str | None:
        """Open page to talk to, preferring one whose script is attached.

        A page known but detached (reloading) is returned only when no
        attached page exists.
        """
        if self.channel is not None:
            for context_id in self._known:
                if self.channel.is_registered(context_id):
                    return context_id
        return next(iter(self._known), None)

    def _forget_detached(self, keep: str) -> None:
        if self.channel is None:
            return
        stale = [
            c
            for c in self._known
            if c != keep and not self.channel.is_registered(c)
        ]
        for context_id in stale:
            # dropped without "closed" (crash or killed tab)
            del self._known[context_id]
            logger.info("forgetting detached context=%s", context_id)

    async def on_connect(
        self, sid: str, environ: dict, auth: dict | None = None
    ) -> bool:
        context_id = (auth or {}).get("contextId")
        if not context_id or self.channel is None:
            logger.warning("rejecting counterpart session %s", sid)
            return False

        connection = SocketConnection(self.sio, sid)
        context_id = str(context_id)
        self._sessions[sid] = (context_id, connection)
        self._known[context_id] = None
        self.channel.register(context_id, connection)
        self._forget_detached(keep=context_id)
        return True

    async def on_disconnect(self, sid: str, *args: Any) -> None:
        entry = self._sessions.pop(sid, None)
        if entry is None or self.channel is None:
            return
        context_id, connection = entry
        self.channel.unregister(context_id, connection)

    async def on_response(self, sid: str, data: dict) -> None:
        if self.channel is not None:
            self.channel.dispatch(data)

    async def on_closed(self, sid: str, data: Any = None) -> None:
        entry = self._sessions.get(sid)
        if entry is not None:
            self._known.pop(entry[0], None)
            logger.info("retailer page closed: context=%s", entry[0])


def _respond(result: dict[str, Any]) -> web.Response:
    error = result.get("error")
    status = 200
    if error:
        status = _ERROR_STATUS.get(error.get("kind", ""), 400)
    return web.json_response(result, status=status)


async def _read_json(request: web.Request) -> dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError as e:
        raise web.HTTPBadRequest(text="request body is not valid json") from e
    return body if isinstance(body, dict) else {}


async def handle_status(request: web.Request) -> web.Response:
    return _respond(await request.app[SERVICE_KEY].get_status())


async def handle_authorize_url(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    redirect_uri = request.query.get("redirect_uri", DEFAULT_REDIRECT_URI)
    url = build_authorize_url(service.config, redirect_uri)
    return web.json_response({"url": url})


async def handle_connect(request: web.Request) -> web.Response:
    body = await _read_json(request)
    response_url = body.get("responseUrl")

    async def flow(_authorize_url: str) -> str | None:
        # the UI already ran the consent flow and hands us the redirect
        return response_url

    return _respond(await request.app[SERVICE_KEY].connect(flow))


async def handle_disconnect(request: web.Request) -> web.Response:
    return _respond(await request.app[SERVICE_KEY].disconnect())


async def handle_sync(request: web.Request) -> web.Response:
    body = await _read_json(request)
    result = await request.app[SERVICE_KEY].start_sync(
        body.get("startDate"), body.get("endDate")
    )
    return _respond(result)


def create_app(
    config: SyncConfig | None = None,
    store: CredentialStore | None = None,
) -> web.Application:
    """Build the coordinator application."""
    config = config or SyncConfig()
    sio = socketio.AsyncServer(
        async_mode="aiohttp",
        cors_allowed_origins="*",
        logger=False,
        engineio_logger=False,
    )
    bridge = CounterpartBridge(sio)
    service = SyncService.create(config, bridge.locate, store=store)
    bridge.attach(service.channel)

    async def broadcast(message: dict[str, Any]) -> None:
        await sio.emit("progress", message, namespace=OBSERVER_NAMESPACE)

    async def on_observer_connect(
        sid: str, environ: dict, auth: dict | None = None
    ) -> None:
        logger.debug("observer connected: %s", sid)

    sio.on("connect", on_observer_connect, namespace=OBSERVER_NAMESPACE)
    service.publisher.subscribe(broadcast)

    app = web.Application()
    app[SERVICE_KEY] = service
    sio.attach(app)
    app.router.add_get("/api/status", handle_status)
    app.router.add_get("/api/authorize-url", handle_authorize_url)
    app.router.add_post("/api/connect", handle_connect)
    app.router.add_post("/api/disconnect", handle_disconnect)
    app.router.add_post("/api/sync", handle_sync)

    async def on_cleanup(app: web.Application) -> None:
        await app[SERVICE_KEY].close()

    app.on_cleanup.append(on_cleanup)
    return app


def run(config: SyncConfig | None = None) -> None:
    config = config or SyncConfig()
    app = create_app(config)
    logger.info(
        "serving on http://%s:%d (inventory=%s)",
        config.host,
        config.port,
        config.inventory_url,
    )
    web.run_app(app, host=config.host, port=config.port, print=None)
