"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import Any

import aiohttp

from receiptsync import console
from receiptsync.config import SyncConfig


def server_url(config: SyncConfig, url: str | None) -> str:
    return (url or f"http://{config.host}:{config.port}").rstrip("/")


async def call_server(
    method: str,
    url: str,
    payload: dict[str, Any] | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Call a running ``receiptsync serve`` and return its JSON body."""
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.request(method, url, json=payload) as resp:
            return await resp.json()


def report_error(result: dict[str, Any]) -> bool:
    """Print a structured error if present. Returns True if one was."""
    error = result.get("error")
    if not error:
        return False
    console.error(f"{error.get('message')} ({error.get('kind')})")
    return True
