"""Runtime configuration for receiptsync.

Environment variables:
    RECEIPTSYNC_INVENTORY_URL: Inventory service base URL
    RECEIPTSYNC_HTTP_TIMEOUT: Seconds per inventory service request
    RECEIPTSYNC_CHANNEL_TIMEOUT: Seconds to wait for the retailer page
    RECEIPTSYNC_RATE_LIMIT_DELAY: Seconds between detail fetches
    RECEIPTSYNC_RETRY_DELAY: Seconds before retrying a 401
    RECEIPTSYNC_LOOKBACK_DAYS: Default sync window when no dates are given
    RECEIPTSYNC_CREDENTIALS_PATH: Where the bearer token is kept
    RECEIPTSYNC_HOST / RECEIPTSYNC_PORT: Bind address for ``serve``
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

ENV_INVENTORY_URL = "RECEIPTSYNC_INVENTORY_URL"
ENV_HTTP_TIMEOUT = "RECEIPTSYNC_HTTP_TIMEOUT"
ENV_CHANNEL_TIMEOUT = "RECEIPTSYNC_CHANNEL_TIMEOUT"
ENV_RATE_LIMIT_DELAY = "RECEIPTSYNC_RATE_LIMIT_DELAY"
ENV_RETRY_DELAY = "RECEIPTSYNC_RETRY_DELAY"
ENV_LOOKBACK_DAYS = "RECEIPTSYNC_LOOKBACK_DAYS"
ENV_CREDENTIALS_PATH = "RECEIPTSYNC_CREDENTIALS_PATH"
ENV_HOST = "RECEIPTSYNC_HOST"
ENV_PORT = "RECEIPTSYNC_PORT"

# switch to https://warehousemeals.com for production
DEFAULT_INVENTORY_URL = "https://warehousemeals.test"
DEFAULT_CREDENTIALS_PATH = Path.home() / ".receiptsync" / "credentials.json"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    return int(raw) if raw else default


@dataclass
class SyncConfig:
    """Configuration for the sync core and its hosts."""

    inventory_url: str = field(
        default_factory=lambda: os.environ.get(
            ENV_INVENTORY_URL, DEFAULT_INVENTORY_URL
        )
    )
    http_timeout: float = field(
        default_factory=lambda: _env_float(ENV_HTTP_TIMEOUT, 15.0)
    )
    channel_timeout: float | None = field(
        default_factory=lambda: _env_float(ENV_CHANNEL_TIMEOUT, 30.0)
    )
    rate_limit_delay: float = field(
        default_factory=lambda: _env_float(ENV_RATE_LIMIT_DELAY, 1.0)
    )
    retry_delay: float = field(
        default_factory=lambda: _env_float(ENV_RETRY_DELAY, 1.0)
    )
    lookback_days: int = field(
        default_factory=lambda: _env_int(ENV_LOOKBACK_DAYS, 90)
    )
    credentials_path: Path = field(
        default_factory=lambda: Path(
            os.environ.get(ENV_CREDENTIALS_PATH, "")
            or DEFAULT_CREDENTIALS_PATH
        )
    )
    host: str = field(
        default_factory=lambda: os.environ.get(ENV_HOST, "127.0.0.1")
    )
    port: int = field(default_factory=lambda: _env_int(ENV_PORT, 8765))

    def __post_init__(self) -> None:
        self.inventory_url = self.inventory_url.rstrip("/")

    @property
    def import_url(self) -> str:
        return f"{self.inventory_url}/api/receipts/import"

    @property
    def user_url(self) -> str:
        return f"{self.inventory_url}/api/user"

    @property
    def authorize_url(self) -> str:
        return f"{self.inventory_url}/auth/extension/authorize"
