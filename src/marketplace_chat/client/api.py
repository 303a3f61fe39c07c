"""Async HTTP client for the chat endpoints."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class ChatApiError(RuntimeError):
    """Raised when the chat API rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ChatApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` authenticated with a bearer token."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=httpx.Timeout(self._timeout),
                    headers={"Authorization": f"Bearer {self._token}"},
                    transport=self._transport,
                )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: Any | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        client = await self._ensure_client()
        try:
            response = await client.request(
                method,
                f"{API_PREFIX}{path}",
                json=json_data,
                params=params,
            )
        except httpx.HTTPError as exc:
            raise ChatApiError(f"Chat API request failed: {exc}") from exc

        if response.is_error:
            try:
                code = response.json().get("error")
            except (ValueError, AttributeError):
                code = None
            raise ChatApiError(
                f"Chat API responded with {response.status_code} for {method} {path}",
                status_code=response.status_code,
                code=code,
            )
        body = response.json()
        return body if isinstance(body, dict) else {"items": body}

    async def start_conversation(self, participant_id: str) -> str:
        """Start (or reuse) the conversation with ``participant_id`` and return its id."""
        body = await self._request(
            "POST",
            "/chat/conversations/start",
            json_data={"participantId": participant_id},
        )
        conversation_id = body.get("conversation_id")
        if not conversation_id:
            raise ChatApiError("Chat API did not return a conversation id")
        return str(conversation_id)

    async def send_conversation_message(self, conversation_id: str, body: str) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"/chat/conversations/{conversation_id}/messages",
            json_data={"body": body},
        )
        return response.get("message", response)

    async def mark_read(self, conversation_id: str) -> None:
        await self._request("POST", f"/chat/conversations/{conversation_id}/read")

    async def typing(self, conversation_id: str, typing: bool = True) -> bool:
        """Send a typing signal. Returns True when the server throttled it."""
        body = await self._request(
            "POST",
            f"/chat/conversations/{conversation_id}/typing",
            json_data={"typing": typing},
        )
        return bool(body.get("throttled"))

    async def list_conversations(self, include_hidden: bool = False) -> list[dict[str, Any]]:
        body = await self._request(
            "GET",
            "/chat/conversations",
            params={"includeHidden": str(include_hidden).lower()},
        )
        return list(body.get("conversations", []))

    async def close(self) -> None:
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def __aenter__(self) -> ChatApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
