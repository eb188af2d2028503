"""Authenticated HTTP client for the inventory service.

Purpose
- Inject the stored bearer token into every outbound call.
- Tell transient network trouble apart from a rejected token: a single 401
  is retried once after a short pause, and only a second consecutive 401
  clears the stored credential.

Status codes other than 401 are handed back untouched; interpreting them
is the caller's job.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

import aiohttp

from receiptsync.config import SyncConfig
from receiptsync.credentials import CredentialStore
from receiptsync.errors import (
    AuthorizationError,
    NetworkError,
    NotAuthenticatedError,
    SessionExpiredError,
    SyncError,
)
from receiptsync.logging_config import get_logger
from receiptsync.models import CredentialValidation

logger = get_logger("auth_client")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class HttpResponse:
    """Fully-read HTTP response, detached from the aiohttp connection."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_json(self) -> bool:
        content_type = next(
            (v for k, v in self.headers.items() if k.lower() == "content-type"),
            "",
        )
        return "application/json" in content_type.lower()

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8") or "null")

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class AuthenticatedClient:
    """Bearer-authenticated requests with 401 retry-then-invalidate.

    Usage:
        client = AuthenticatedClient(config, store)
        resp = await client.request(config.user_url)
        await client.close()
    """

    def __init__(
        self,
        config: SyncConfig,
        store: CredentialStore,
        session: aiohttp.ClientSession | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    async def __aenter__(self) -> AuthenticatedClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: Any,
    ) -> HttpResponse:
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.config.http_timeout)
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                timeout=timeout,
            ) as resp:
                body = await resp.read()
                return HttpResponse(
                    status=resp.status,
                    headers=dict(resp.headers),
                    body=body,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise NetworkError() from e

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        """Make an authenticated request.

        Raises:
            NotAuthenticatedError: No credential stored
            NetworkError: Transport failure or timeout
            SessionExpiredError: Two consecutive 401s (credential cleared)
        """
        token = await self.store.get()
        if not token:
            raise NotAuthenticatedError()

        merged = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            **(headers or {}),
            "Authorization": f"Bearer {token}",
        }

        resp = await self._send(method, url, headers=merged, json_body=json)
        if resp.status != 401:
            return resp

        # a lone 401 can be a transient hiccup on the service side
        logger.info("got 401 from %s, retrying once", url)
        await self._sleep(self.config.retry_delay)

        resp = await self._send(method, url, headers=merged, json_body=json)
        if resp.status == 401:
            logger.info("token confirmed invalid, clearing credential")
            await self.store.clear()
            raise SessionExpiredError()

        return resp

    async def validate_credential(self) -> CredentialValidation:
        """Check the user endpoint with the stored token.

        A network failure is indeterminate and leaves the token in place.
        """
        if not await self.store.get():
            return CredentialValidation(valid=False)

        try:
            resp = await self.request(self.config.user_url)
        except NetworkError:
            return CredentialValidation(valid=False, network_error=True)
        except SyncError as e:
            logger.debug("credential validation failed: %s", e.kind.value)
            return CredentialValidation(valid=False)

        return CredentialValidation(valid=resp.ok)


def build_authorize_url(config: SyncConfig, redirect_uri: str) -> str:
    """URL that starts the inventory service's consent flow."""
    query = urlencode({"redirect_uri": redirect_uri})
    return f"{config.authorize_url}?{query}"


def token_from_redirect(response_url: str | None) -> str:
    """Extract the issued token from the consent flow's redirect URL.

    Raises:
        AuthorizationError: Flow cancelled or no token in the redirect
    """
    if not response_url:
        raise AuthorizationError("Authorization was cancelled")

    query = parse_qs(urlparse(response_url).query)
    tokens = query.get("token") or []
    if not tokens or not tokens[0]:
        raise AuthorizationError(
            "No token received from the inventory service"
        )
    return tokens[0]
