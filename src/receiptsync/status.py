"""Point-in-time readiness view for the UI."""

from __future__ import annotations

from receiptsync.auth_client import AuthenticatedClient
from receiptsync.channel import CheckLogin, RemoteChannel
from receiptsync.credentials import CredentialStore
from receiptsync.errors import SyncError
from receiptsync.logging_config import get_logger
from receiptsync.models import StatusReport
from receiptsync.orchestrator import SyncOrchestrator

logger = get_logger("status")


class StatusAggregator:
    def __init__(
        self,
        store: CredentialStore,
        channel: RemoteChannel,
        client: AuthenticatedClient,
        orchestrator: SyncOrchestrator,
    ) -> None:
        self.store = store
        self.channel = channel
        self.client = client
        self.orchestrator = orchestrator

    async def is_counterpart_logged_in(self) -> bool:
        """Ask the retailer page whether its user is signed in."""
        try:
            return await self.channel.call(CheckLogin())
        except SyncError as e:
            logger.debug("login check failed: %s", e.kind.value)
            return False

    async def compute_status(self) -> StatusReport:
        """Compose connection status for both services.

        While a sync runs, the cached view is returned: revalidating the
        token or probing the retailer page would spend request budget the
        sync needs.
        """
        has_token = bool(await self.store.get())
        has_tab = await self.channel.locate() is not None

        if self.orchestrator.in_progress:
            return StatusReport(
                warehouse_connected=has_token,
                # the sync could not have started without it
                counterpart_connected=True,
                has_counterpart_tab=has_tab,
                sync_in_progress=True,
                sync_progress=self.orchestrator.progress,
            )

        logged_in = await self.is_counterpart_logged_in() if has_tab else False

        warehouse_connected = False
        network_error = False
        if has_token:
            validation = await self.client.validate_credential()
            warehouse_connected = validation.valid
            network_error = validation.network_error

        return StatusReport(
            warehouse_connected=warehouse_connected,
            counterpart_connected=logged_in,
            has_counterpart_tab=has_tab,
            network_error=network_error,
            sync_in_progress=False,
        )
