"""Status command - show connection state of a running coordinator."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field

import aiohttp

from receiptsync import console
from receiptsync.cli._common import call_server, report_error, server_url
from receiptsync.config import SyncConfig


@dataclass
class Status:
    """Show inventory service and retailer page status."""

    url: str | None = field(
        default=None,
        metadata={"help": "Coordinator URL (default: from host/port env)"},
    )
    json_output: bool = field(
        default=False,
        metadata={"help": "Print raw JSON"},
    )

    def run(self) -> int:
        """Execute the status command."""
        base = server_url(SyncConfig(), self.url)
        try:
            result = asyncio.run(
                call_server("GET", f"{base}/api/status", timeout=30)
            )
        except aiohttp.ClientError as e:
            console.error(f"coordinator not reachable at {base}: {e}")
            return 1

        if self.json_output:
            print(json.dumps(result, indent=2))
            return 0
        if report_error(result):
            return 1

        console.header("receiptsync status")
        if result.get("networkError"):
            console.key_value("inventory service", "network error")
        else:
            connected = result.get("warehouseConnected")
            console.key_value(
                "inventory service",
                "connected" if connected else "disconnected",
            )
        console.key_value("retailer tab open", result.get("hasCounterpartTab"))
        console.key_value(
            "retailer signed in", result.get("counterpartConnected")
        )
        console.key_value("sync running", result.get("syncInProgress"))

        progress = result.get("syncProgress")
        if progress:
            console.key_value("progress", progress.get("message", ""))
        return 0
