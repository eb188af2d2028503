"""Sync command - trigger a receipt sync on a running coordinator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import aiohttp

from receiptsync import console
from receiptsync.cli._common import call_server, report_error, server_url
from receiptsync.config import SyncConfig


@dataclass
class Sync:
    """Sync receipts from the retailer into the inventory service."""

    start_date: str | None = field(
        default=None,
        metadata={"help": "First day, YYYY-MM-DD (default: 90 days ago)"},
    )
    end_date: str | None = field(
        default=None,
        metadata={"help": "Last day, YYYY-MM-DD (default: today)"},
    )
    url: str | None = field(
        default=None,
        metadata={"help": "Coordinator URL (default: from host/port env)"},
    )

    def run(self) -> int:
        """Execute the sync command."""
        base = server_url(SyncConfig(), self.url)
        payload = {"startDate": self.start_date, "endDate": self.end_date}

        console.info("syncing receipts...")
        try:
            result = asyncio.run(
                call_server("POST", f"{base}/api/sync", payload=payload)
            )
        except aiohttp.ClientError as e:
            console.error(f"coordinator not reachable at {base}: {e}")
            return 1

        if report_error(result):
            return 1

        if result.get("count") == 0:
            console.info(result.get("message") or "no receipts found")
            return 0

        console.success("sync complete")
        console.key_value("imported", result.get("imported", 0))
        console.key_value("duplicates", result.get("duplicates", 0))
        console.key_value("skipped", result.get("skipped", 0))
        console.key_value("errors", result.get("errors", 0))
        if result.get("fetchFailed"):
            console.warning(
                f"{result['fetchFailed']} receipt(s) could not be fetched"
            )
        return 0
