"""Client for the hosted pub/sub broadcast service.

The service speaks the Pusher Channels HTTP API. This module covers the two
operations the messaging core needs:

- publishing an event to a channel (``trigger``)
- signing a private-channel subscription grant (``sign_subscription``)

Publishing is best-effort; callers receive ``BroadcastError`` and decide
whether to swallow it.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from marketplace_chat.core.settings import settings

logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_INTERNAL_SERVER_ERROR = 500

AUTH_VERSION = "1.0"
_SOCKET_ID = re.compile(r"^\d+\.\d+$")


class BroadcastError(RuntimeError):
    """Base exception raised for broadcast-related failures."""


class BroadcastDisabledError(BroadcastError):
    """Raised when broadcast operations are attempted without credentials."""


@dataclass(frozen=True)
class BroadcastConfig:
    """Immutable configuration for broadcast operations."""

    app_id: str | None
    key: str | None
    secret: str | None
    cluster: str
    host: str | None
    timeout_seconds: float

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.key and self.secret)

    @property
    def base_url(self) -> str:
        host = self.host or f"api-{self.cluster}.pusher.com"
        if host.startswith(("http://", "https://")):
            return host.rstrip("/")
        return f"https://{host}"


def load_broadcast_config() -> BroadcastConfig:
    """Build configuration object from global settings."""

    return BroadcastConfig(
        app_id=settings.broadcast_app_id,
        key=settings.broadcast_key,
        secret=settings.broadcast_secret,
        cluster=settings.broadcast_cluster,
        host=settings.broadcast_host,
        timeout_seconds=float(settings.broadcast_http_timeout_seconds),
    )


def _hmac_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


class BroadcastClient:
    """HTTP client wrapper for the broadcast service."""

    def __init__(
        self,
        config: BroadcastConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_broadcast_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise BroadcastDisabledError("Broadcast service is not configured")

        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )

        return self._client

    def sign_subscription(self, socket_id: str, channel_name: str) -> dict[str, str]:
        """Return the grant for ``socket_id`` to subscribe to ``channel_name``."""
        if not self.enabled:
            raise BroadcastDisabledError("Broadcast service is not configured")
        if not _SOCKET_ID.match(socket_id or ""):
            raise BroadcastError("Invalid socket id")
        signature = _hmac_hex(self.config.secret or "", f"{socket_id}:{channel_name}")
        return {"auth": f"{self.config.key}:{signature}"}

    def _signed_query(self, method: str, path: str, body: bytes) -> dict[str, str]:
        params = {
            "auth_key": self.config.key or "",
            "auth_timestamp": str(int(time.time())),
            "auth_version": AUTH_VERSION,
            "body_md5": hashlib.md5(body).hexdigest(),
        }
        query = urlencode(sorted(params.items()))
        params["auth_signature"] = _hmac_hex(
            self.config.secret or "",
            f"{method}\n{path}\n{query}",
        )
        return params

    async def _request(self, method: str, path: str, body: bytes) -> httpx.Response:
        client = await self._ensure_client()
        params = self._signed_query(method, path, body)

        try:
            response = await client.request(
                method,
                path,
                content=body,
                params=params,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise BroadcastError(f"Broadcast request failed: {exc}") from exc

        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            raise BroadcastError(f"Broadcast service responded with {response.status_code}")
        return response

    async def trigger(self, channel: str, event_name: str, payload: Mapping[str, Any]) -> None:
        """Publish ``payload`` as ``event_name`` on ``channel``."""

        path = f"/apps/{self.config.app_id}/events"
        body = json.dumps(
            {
                "name": event_name,
                "channels": [channel],
                "data": json.dumps(dict(payload), default=str),
            },
            separators=(",", ":"),
        ).encode("utf-8")

        response = await self._request("POST", path, body)
        if response.status_code != HTTP_OK:
            raise BroadcastError(
                f"Unexpected broadcast response ({response.status_code}) for {event_name}",
            )
        logger.debug("Published %s to %s", event_name, channel)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _BroadcastClientSingleton:
    """Singleton wrapper for BroadcastClient."""

    _instance: BroadcastClient | None = None

    @classmethod
    def get_instance(cls) -> BroadcastClient:
        """Get or create the singleton BroadcastClient instance."""
        if cls._instance is None:
            cls._instance = BroadcastClient()
        return cls._instance


def get_broadcast_client() -> BroadcastClient:
    """Return a singleton broadcast client instance."""
    return _BroadcastClientSingleton.get_instance()


def broadcast_enabled() -> bool:
    """Return True if broadcast credentials are configured."""

    return get_broadcast_client().enabled
