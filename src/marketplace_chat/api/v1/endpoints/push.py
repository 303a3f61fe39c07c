# src/marketplace_chat/api/v1/endpoints/push.py
"""Web push subscription endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, status

from marketplace_chat.api.v1.dependencies import CurrentUserDep, SessionDep
from marketplace_chat.core.settings import settings
from marketplace_chat.schemas.push import PushSubscriptionCreate, PushSubscriptionDelete
from marketplace_chat.services import push as push_service

router = APIRouter(prefix="/push", tags=["push"])


@router.get("/vapid-public-key")
async def vapid_public_key() -> dict[str, Any]:
    """Return the application server key browsers need to subscribe."""
    return {"public_key": settings.vapid_public_key, "configured": settings.push_configured}


@router.post("/subscriptions", status_code=status.HTTP_201_CREATED)
async def subscribe(
    payload: PushSubscriptionCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    """Register or refresh the caller's browser push subscription."""
    subscription = push_service.subscribe(
        db,
        current_user.id,
        payload.endpoint,
        payload.keys.p256dh,
        payload.keys.auth,
    )
    return {"ok": True, "id": subscription.id}


@router.delete("/subscriptions")
async def unsubscribe(
    payload: PushSubscriptionDelete,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    removed = push_service.unsubscribe(db, current_user.id, payload.endpoint)
    return {"ok": True, "removed": removed}
