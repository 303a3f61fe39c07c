# src/marketplace_chat/api/v1/endpoints/messages.py
"""Legacy seller thread endpoints: seed messages and their replies."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, status

from marketplace_chat.api.v1.dependencies import CurrentUserDep, LegacyStoreDep, NotifierDep
from marketplace_chat.core.delivery import DeliveryStatus
from marketplace_chat.models import Message, MessageReply
from marketplace_chat.schemas.message import (
    ContactSellerRequest,
    DeliveryResponse,
    MessageResponse,
    ReplyCreate,
    ReplyResponse,
    StartBySellerRequest,
    StatusUpdate,
)
from marketplace_chat.services.store import TimelineItem

router = APIRouter(prefix="/messages", tags=["messages"])


def _timeline(items: list[TimelineItem]) -> dict[str, Any]:
    return {"timeline": [item.as_dict() for item in items]}


@router.post("/send", status_code=status.HTTP_201_CREATED)
async def contact_seller(
    payload: ContactSellerRequest,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> dict[str, Any]:
    """Buyer contacts a seller, starting the thread or continuing the live one."""
    result = store.contact_seller(current_user, payload.seller_id or "", payload.body or "")
    await notifier.notify(result.events)

    record = result.record
    if isinstance(record, MessageReply):
        return {
            "ok": True,
            "id": record.message_id,
            "reply_id": record.id,
            "created_at": record.created_at,
        }
    return {"ok": True, "id": record.id, "created_at": record.created_at}


@router.post("/start-by-seller", status_code=status.HTTP_201_CREATED)
async def start_by_seller(
    payload: StartBySellerRequest,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> dict[str, Any]:
    """Seller opens a thread with a buyer who has not written yet."""
    result = store.start_by_seller(current_user, payload.buyer_email or "", payload.body or "")
    await notifier.notify(result.events)
    reply: MessageReply = result.record
    return {"ok": True, "message_id": reply.message_id, "reply_id": reply.id}


@router.get("")
async def seller_inbox(
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    status_filter: str | None = Query(None, alias="status"),
) -> dict[str, Any]:
    """List the seller's live seed messages, newest first."""
    messages = store.seller_inbox(current_user, status_filter)
    return {"items": [MessageResponse.model_validate(m).model_dump() for m in messages]}


@router.get("/history")
async def seller_history(
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    buyer_email: str = Query("", alias="buyerEmail"),
) -> dict[str, Any]:
    return _timeline(store.seller_timeline(current_user, buyer_email))


@router.get("/history/buyer")
async def buyer_history(
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    seller_id: str = Query("", alias="sellerId"),
) -> dict[str, Any]:
    return _timeline(store.buyer_timeline(current_user, seller_id))


@router.get("/{message_id}", response_model=MessageResponse)
async def get_message(
    message_id: str,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
) -> Message:
    return store.get_message(current_user, message_id)


@router.patch("/{message_id}")
async def update_status(
    message_id: str,
    payload: StatusUpdate,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> dict[str, Any]:
    """Change mailbox triage status; delivery status is not affected."""
    result = store.set_status(current_user, message_id, payload.status)
    await notifier.notify(result.events)
    return {"ok": True, "id": result.record.id, "status": result.record.status}


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> dict[str, Any]:
    result = store.delete_message(current_user, message_id)
    await notifier.notify(result.events)
    return {"ok": True, "id": message_id}


@router.post("/{message_id}/reply", status_code=status.HTTP_201_CREATED)
async def reply_as_seller(
    message_id: str,
    payload: ReplyCreate,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> dict[str, Any]:
    result = store.reply_as_seller(current_user, message_id, payload.body or "")
    await notifier.notify(result.events)
    return {"ok": True, "reply": ReplyResponse.model_validate(result.record).model_dump()}


@router.post("/{message_id}/reply/buyer", status_code=status.HTTP_201_CREATED)
async def reply_as_buyer(
    message_id: str,
    payload: ReplyCreate,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> dict[str, Any]:
    result = store.reply_as_buyer(current_user, message_id, payload.body or "")
    await notifier.notify(result.events)
    return {"ok": True, "reply": ReplyResponse.model_validate(result.record).model_dump()}


@router.post("/{message_id}/delivered", response_model=DeliveryResponse)
async def mark_delivered(
    message_id: str,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> DeliveryResponse:
    result = store.mark_message(current_user, message_id, DeliveryStatus.DELIVERED)
    await notifier.notify(result.events)
    return DeliveryResponse(delivery_status=result.record.value)


@router.post("/{message_id}/read", response_model=DeliveryResponse)
async def mark_read(
    message_id: str,
    current_user: CurrentUserDep,
    store: LegacyStoreDep,
    notifier: NotifierDep,
) -> DeliveryResponse:
    result = store.mark_message(current_user, message_id, DeliveryStatus.READ)
    await notifier.notify(result.events)
    return DeliveryResponse(delivery_status=result.record.value)
