# src/marketplace_chat/api/v1/endpoints/conversations.py
"""Symmetric conversation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status

from marketplace_chat.api.v1.dependencies import (
    ConversationStoreDep,
    CurrentUserDep,
    NotifierDep,
    TypingLimiterDep,
    require_chat_v2,
)
from marketplace_chat.schemas.conversation import (
    ConversationMessageCreate,
    StartConversationRequest,
    TypingRequest,
)

router = APIRouter(prefix="/chat", tags=["chat"], dependencies=[Depends(require_chat_v2)])


def _parse_instant(value: str | None) -> datetime | None:
    """Parse an ISO timestamp; unparseable values are ignored."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


@router.post("/conversations/start")
async def start_conversation(
    payload: StartConversationRequest,
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
    notifier: NotifierDep,
) -> dict[str, str]:
    """Find or create the conversation with another user."""
    result = store.start(current_user, payload.participant_id or "")
    await notifier.notify(result.events)
    return {"conversation_id": result.record.id}


@router.get("/conversations")
async def list_conversations(
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
    include_hidden: bool = Query(False, alias="includeHidden"),
) -> dict[str, Any]:
    return {"conversations": store.list_for(current_user, include_hidden=include_hidden)}


@router.get("/conversations/{conversation_id}/messages")
async def conversation_history(
    conversation_id: str,
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
    limit: int = Query(50, ge=1, le=200),
    before: str | None = Query(None),
    after: str | None = Query(None),
    order: str = Query("asc"),
) -> dict[str, Any]:
    """Page through a conversation; ``before`` wins over ``after``."""
    items = store.history(
        current_user,
        conversation_id,
        limit=limit,
        before=_parse_instant(before),
        after=_parse_instant(after),
        order="desc" if order.lower() == "desc" else "asc",
    )
    return {"messages": [item.as_dict() for item in items]}


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_conversation_message(
    conversation_id: str,
    payload: ConversationMessageCreate,
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
    notifier: NotifierDep,
) -> dict[str, Any]:
    result = store.post_message(current_user, conversation_id, payload.body or "")
    await notifier.notify(result.events)
    return {"message": store.message_payload(result.record)}


@router.post("/conversations/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: str,
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
    notifier: NotifierDep,
) -> dict[str, bool]:
    result = store.mark_read(current_user, conversation_id)
    await notifier.notify(result.events)
    return {"ok": True}


@router.post("/conversations/{conversation_id}/typing")
async def typing_signal(
    conversation_id: str,
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
    notifier: NotifierDep,
    limiter: TypingLimiterDep,
    payload: TypingRequest | None = None,
) -> dict[str, bool]:
    """Relay a typing indicator, at most once per second per user and conversation."""
    typing = payload.typing if payload is not None else True
    result = store.typing(current_user, conversation_id, typing, limiter)
    if result.record:
        return {"ok": True, "throttled": True}
    await notifier.notify(result.events)
    return {"ok": True}


@router.post("/conversations/{conversation_id}/hide")
async def hide_conversation(
    conversation_id: str,
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
) -> dict[str, bool]:
    store.hide(current_user, conversation_id)
    return {"ok": True}


@router.post("/conversations/{conversation_id}/unhide")
async def unhide_conversation(
    conversation_id: str,
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
) -> dict[str, bool]:
    store.unhide(current_user, conversation_id)
    return {"ok": True}


@router.get("/inbox-snapshot")
async def inbox_snapshot(
    current_user: CurrentUserDep,
    store: ConversationStoreDep,
) -> dict[str, Any]:
    """Unread total and the most recent conversations for notification badges."""
    return store.inbox_snapshot(current_user)
