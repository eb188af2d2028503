"""Control surface exposed to the calling UI.

Every operation resolves to a plain dict: the result on success, or
``{"error": {"kind": ..., "message": ...}}`` on failure. Nothing raised in
the core escapes, so the host stays ready for the next call.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

from receiptsync.auth_client import (
    AuthenticatedClient,
    Sleep,
    build_authorize_url,
    token_from_redirect,
)
from receiptsync.channel import ContextLocator, RemoteChannel
from receiptsync.config import SyncConfig
from receiptsync.credentials import CredentialStore, JsonFileCredentialStore
from receiptsync.errors import SyncError
from receiptsync.logging_config import get_logger
from receiptsync.orchestrator import SyncOrchestrator
from receiptsync.progress import ProgressPublisher
from receiptsync.status import StatusAggregator

logger = get_logger("service")

# receives the authorize URL, returns the redirect URL (None if cancelled)
AuthorizationFlow = Callable[[str], Awaitable[str | None]]

DEFAULT_REDIRECT_URI = "http://127.0.0.1/receiptsync/callback"


def default_date_range(
    lookback_days: int, today: date | None = None
) -> tuple[str, str]:
    """Trailing window of ``lookback_days`` ending today, as ISO dates."""
    end = today or datetime.now(timezone.utc).date()
    start = end - timedelta(days=lookback_days)
    return start.isoformat(), end.isoformat()


def structured(
    fn: Callable[..., Awaitable[dict[str, Any]]],
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Turn raised errors into ``{"error": {...}}`` results."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return await fn(*args, **kwargs)
        except SyncError as e:
            logger.info("%s failed: %s", fn.__name__, e.message)
            return {"error": e.to_dict()}
        except Exception as e:
            logger.exception("%s crashed: %s", fn.__name__, e)
            # internals stay in the log, the caller gets the generic message
            return {"error": SyncError().to_dict()}

    return wrapper


class SyncService:
    """getStatus / connect / disconnect / startSync for one process.

    Usage:
        service = SyncService.create(config, locate_context=find_tab)
        await service.start_sync()
        status = await service.get_status()
    """

    def __init__(
        self,
        config: SyncConfig,
        store: CredentialStore,
        channel: RemoteChannel,
        client: AuthenticatedClient,
        publisher: ProgressPublisher,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self.channel = channel
        self.client = client
        self.publisher = publisher
        self.orchestrator = SyncOrchestrator(
            config, channel, client, publisher, sleep=sleep
        )
        self.status = StatusAggregator(
            store, channel, client, self.orchestrator
        )

    @classmethod
    def create(
        cls,
        config: SyncConfig,
        locate_context: ContextLocator,
        store: CredentialStore | None = None,
    ) -> SyncService:
        store = store or JsonFileCredentialStore(config.credentials_path)
        channel = RemoteChannel(locate_context, timeout=config.channel_timeout)
        client = AuthenticatedClient(config, store)
        return cls(config, store, channel, client, ProgressPublisher())

    async def close(self) -> None:
        await self.client.close()

    @structured
    async def get_status(self) -> dict[str, Any]:
        report = await self.status.compute_status()
        return report.to_wire()

    @structured
    async def connect(
        self,
        flow: AuthorizationFlow,
        redirect_uri: str = DEFAULT_REDIRECT_URI,
    ) -> dict[str, Any]:
        """Run the consent flow and store the issued token."""
        authorize_url = build_authorize_url(self.config, redirect_uri)
        response_url = await flow(authorize_url)
        token = token_from_redirect(response_url)
        await self.store.set(token)
        logger.info("connected to inventory service")
        return {"success": True}

    @structured
    async def disconnect(self) -> dict[str, Any]:
        await self.store.clear()
        logger.info("disconnected from inventory service")
        return {"success": True}

    @structured
    async def start_sync(
        self,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        default_start, default_end = default_date_range(
            self.config.lookback_days
        )
        result = await self.orchestrator.start(
            start_date or default_start, end_date or default_end
        )
        return result.to_wire(exclude_none=True)

