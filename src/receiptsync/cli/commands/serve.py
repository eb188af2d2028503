"""Serve command - run the coordinator host."""

from __future__ import annotations

from dataclasses import dataclass, field

from receiptsync.config import SyncConfig
from receiptsync.server import run


@dataclass
class Serve:
    """Run the coordinator (Socket.IO for the retailer page, HTTP API)."""

    host: str | None = field(
        default=None,
        metadata={"help": "Bind address (default: RECEIPTSYNC_HOST)"},
    )
    port: int | None = field(
        default=None,
        metadata={"help": "Bind port (default: RECEIPTSYNC_PORT)"},
    )
    inventory_url: str | None = field(
        default=None,
        metadata={"help": "Inventory service base URL"},
    )

    def run(self) -> int:
        """Execute the serve command."""
        config = SyncConfig()
        if self.host:
            config.host = self.host
        if self.port:
            config.port = self.port
        if self.inventory_url:
            config.inventory_url = self.inventory_url.rstrip("/")

        run(config)
        return 0
