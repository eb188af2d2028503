"""Token commands - manage the stored inventory service credential."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from receiptsync import console
from receiptsync.auth_client import token_from_redirect
from receiptsync.config import SyncConfig
from receiptsync.credentials import JsonFileCredentialStore
from receiptsync.errors import AuthorizationError


def _store(path: Path | None) -> JsonFileCredentialStore:
    return JsonFileCredentialStore(path or SyncConfig().credentials_path)


@dataclass
class TokenSet:
    """Store a token, or extract it from the consent redirect URL."""

    value: str = field(
        metadata={"help": "Bearer token or the full redirect URL"},
    )
    credentials_path: Path | None = field(
        default=None,
        metadata={"help": "Credential file (default: from env)"},
    )

    def run(self) -> int:
        """Execute the token:set command."""
        token = self.value
        if "://" in token:
            try:
                token = token_from_redirect(token)
            except AuthorizationError as e:
                console.error(e.message)
                return 1

        store = _store(self.credentials_path)
        asyncio.run(store.set(token))
        console.success(f"token saved to {store.path}")
        return 0


@dataclass
class TokenClear:
    """Forget the stored token (disconnect)."""

    credentials_path: Path | None = field(
        default=None,
        metadata={"help": "Credential file (default: from env)"},
    )

    def run(self) -> int:
        """Execute the token:clear command."""
        store = _store(self.credentials_path)
        asyncio.run(store.clear())
        console.success("disconnected from inventory service")
        return 0
