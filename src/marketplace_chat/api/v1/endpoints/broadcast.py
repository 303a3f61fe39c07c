# src/marketplace_chat/api/v1/endpoints/broadcast.py
"""Private channel subscription authorization."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from marketplace_chat.api.v1.dependencies import BroadcastClientDep, CurrentUserDep, SessionDep
from marketplace_chat.services.broadcast import BroadcastError
from marketplace_chat.services.channel_auth import authorize_subscription
from marketplace_chat.services.errors import InvalidRequestError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/broadcast", tags=["broadcast"])


async def _read_fields(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    form = await request.form()
    return dict(form)


def _first(data: dict[str, Any], *names: str) -> str:
    for name in names:
        value = data.get(name)
        if value:
            return str(value).strip()
    return ""


@router.post("/auth")
async def authorize_channel(
    request: Request,
    current_user: CurrentUserDep,
    db: SessionDep,
    broadcast: BroadcastClientDep,
) -> dict[str, str]:
    """Sign a subscription grant for one socket and one private channel.

    Accepts JSON or form bodies with ``socket_id``/``socketId`` and
    ``channel_name``/``channelName``.
    """
    data = await _read_fields(request)
    socket_id = _first(data, "socket_id", "socketId")
    channel_name = _first(data, "channel_name", "channelName")
    if not socket_id or not channel_name:
        raise InvalidRequestError("socket_id and channel_name are required")

    authorize_subscription(db, current_user, channel_name)

    if not broadcast.enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Broadcast service is not configured",
        )
    try:
        return broadcast.sign_subscription(socket_id, channel_name)
    except BroadcastError as exc:
        raise InvalidRequestError(str(exc)) from exc
