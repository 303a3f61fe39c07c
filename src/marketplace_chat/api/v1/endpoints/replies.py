# src/marketplace_chat/api/v1/endpoints/replies.py
"""Reply acknowledgement and deletion endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from marketplace_chat.api.v1.dependencies import CurrentUserDep, LegacyStoreDep, NotifierDep
from marketplace_chat.core.delivery import DeliveryStatus
from marketplace_chat.schemas.message import DeliveryResponse

router = APIRouter(prefix="/replies", tags=["replies"])


@router.post("/{reply_id}/delivered", response_model=DeliveryResponse)
async def mark_reply_delivered(
    reply_id: str,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> DeliveryResponse:
    """Receiver confirms the reply reached their device."""
    result = store.mark_reply(current_user, reply_id, DeliveryStatus.DELIVERED)
    await notifier.notify(result.events)
    return DeliveryResponse(delivery_status=result.record.value)


@router.post("/{reply_id}/read", response_model=DeliveryResponse)
async def mark_reply_read(
    reply_id: str,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> DeliveryResponse:
    result = store.mark_reply(current_user, reply_id, DeliveryStatus.READ)
    await notifier.notify(result.events)
    return DeliveryResponse(delivery_status=result.record.value)


@router.delete("/{reply_id}")
async def delete_reply(
    reply_id: str,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> dict[str, Any]:
    result = store.delete_reply(current_user, reply_id)
    await notifier.notify(result.events)
    return {"ok": True, "id": reply_id}
