"""Bearer credential storage.

Only the inventory service token is ever stored. Retailer session tokens
stay inside the retailer page and never reach this process.
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Protocol

from receiptsync.logging_config import get_logger

logger = get_logger("credentials")

TOKEN_KEY = "warehouseMealsToken"


class CredentialStore(Protocol):
    async def get(self) -> str | None: ...

    async def set(self, token: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryCredentialStore:
    """Process-local store, lost on exit."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    async def get(self) -> str | None:
        return self._token

    async def set(self, token: str) -> None:
        self._token = token

    async def clear(self) -> None:
        self._token = None


class JsonFileCredentialStore:
    """Keeps the token in a small JSON file readable only by the owner."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def get(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError:
            logger.warning("credential file %s is not valid json", self.path)
            return None
        token = raw.get(TOKEN_KEY) if isinstance(raw, dict) else None
        return token or None

    async def set(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {TOKEN_KEY: token, "saved_at_unix": int(time.time())}
        # created owner-only; chmod covers a file that already existed
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        os.chmod(self.path, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    async def clear(self) -> None:
        self.path.unlink(missing_ok=True)
