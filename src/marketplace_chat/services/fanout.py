"""Domain events and their mapping onto broadcast channels.

``dispatch`` is pure: it turns one committed domain event into the list of
publications that should reach live subscribers. Sending them is the
notifier's job.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from marketplace_chat.core.channels import (
    conversation_channel,
    seller_channel,
    thread_channel,
    user_channel,
)
from marketplace_chat.core.delivery import DeliveryStatus

EntityKind = Literal["message", "reply"]


@dataclass(frozen=True)
class Publication:
    """One event to publish on one channel."""

    channel: str
    event_name: str
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class PushNotice:
    """Push notification addressed to a set of users."""

    user_ids: tuple[str, ...]
    title: str
    body: str
    url: str


@dataclass(frozen=True)
class LegacyMessageCreated:
    seller_id: str
    buyer_email: str
    message: Mapping[str, Any]
    push_user_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class LegacyReplyCreated:
    seller_id: str
    buyer_email: str
    reply: Mapping[str, Any]
    push_user_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeliveryChanged:
    """A receiver advanced the delivery status of a message or reply.

    ``receiver_role`` names the party that performed the transition; the
    event is published to the other party only.
    """

    entity_kind: EntityKind
    entity_id: str
    new_status: DeliveryStatus
    seller_id: str
    buyer_email: str
    receiver_role: Literal["seller", "buyer"]


@dataclass(frozen=True)
class LegacyStatusChanged:
    seller_id: str
    message_id: str
    status: str


@dataclass(frozen=True)
class LegacyMessageDeleted:
    seller_id: str
    buyer_email: str
    message_id: str


@dataclass(frozen=True)
class LegacyReplyDeleted:
    seller_id: str
    buyer_email: str
    reply_id: str
    message_id: str


@dataclass(frozen=True)
class ConversationStarted:
    conversation_id: str
    initiator_id: str
    participant_id: str


@dataclass(frozen=True)
class ConversationRead:
    conversation_id: str
    reader_id: str


@dataclass(frozen=True)
class TypingSignal:
    conversation_id: str
    user_id: str
    typing: bool
    at: str


@dataclass(frozen=True)
class ConversationMessageCreated:
    conversation_id: str
    sender_id: str
    message: Mapping[str, Any]
    recipient_ids: tuple[str, ...] = field(default_factory=tuple)


DomainEvent = (
    LegacyMessageCreated
    | LegacyReplyCreated
    | DeliveryChanged
    | LegacyStatusChanged
    | LegacyMessageDeleted
    | LegacyReplyDeleted
    | ConversationStarted
    | ConversationRead
    | TypingSignal
    | ConversationMessageCreated
)


def _legacy_pair(seller_id: str, buyer_email: str) -> tuple[str, str]:
    return seller_channel(seller_id), thread_channel(seller_id, buyer_email)


def dispatch(event: DomainEvent) -> list[Publication]:
    """Return the publications for ``event``."""
    if isinstance(event, LegacyMessageCreated):
        return [
            Publication(channel, "message:new", dict(event.message))
            for channel in _legacy_pair(event.seller_id, event.buyer_email)
        ]

    if isinstance(event, LegacyReplyCreated):
        return [
            Publication(channel, "reply:new", dict(event.reply))
            for channel in _legacy_pair(event.seller_id, event.buyer_email)
        ]

    if isinstance(event, DeliveryChanged):
        # Notify the party that did not perform the transition.
        if event.receiver_role == "seller":
            channel = thread_channel(event.seller_id, event.buyer_email)
        else:
            channel = seller_channel(event.seller_id)
        payload = {"id": event.entity_id, "delivery_status": event.new_status.value}
        return [Publication(channel, f"{event.entity_kind}:{event.new_status.value}", payload)]

    if isinstance(event, LegacyStatusChanged):
        payload = {"id": event.message_id, "status": event.status}
        return [Publication(seller_channel(event.seller_id), "message:updated", payload)]

    if isinstance(event, LegacyMessageDeleted):
        payload = {"id": event.message_id, "sender_email": event.buyer_email}
        return [
            Publication(channel, "message:deleted", payload)
            for channel in _legacy_pair(event.seller_id, event.buyer_email)
        ]

    if isinstance(event, LegacyReplyDeleted):
        payload = {"id": event.reply_id, "message_id": event.message_id}
        return [
            Publication(channel, "reply:deleted", payload)
            for channel in _legacy_pair(event.seller_id, event.buyer_email)
        ]

    if isinstance(event, ConversationStarted):
        payload = {"conversation_id": event.conversation_id}
        return [
            Publication(user_channel(event.participant_id), "chat:conversation:started", payload)
        ]

    if isinstance(event, ConversationRead):
        payload = {"conversation_id": event.conversation_id}
        return [Publication(user_channel(event.reader_id), "chat:conversation:read", payload)]

    if isinstance(event, TypingSignal):
        payload = {
            "conversation_id": event.conversation_id,
            "user_id": event.user_id,
            "typing": event.typing,
            "at": event.at,
        }
        return [Publication(conversation_channel(event.conversation_id), "chat:typing", payload)]

    if isinstance(event, ConversationMessageCreated):
        publications = [
            Publication(
                conversation_channel(event.conversation_id),
                "chat:message:new",
                dict(event.message),
            )
        ]
        for user_id in event.recipient_ids:
            if user_id == event.sender_id:
                continue
            publications.append(
                Publication(
                    user_channel(user_id),
                    "chat:conversation:updated",
                    {"conversation_id": event.conversation_id},
                )
            )
        return publications

    raise TypeError(f"Unsupported event: {type(event).__name__}")


def push_notice(event: DomainEvent) -> PushNotice | None:
    """Return the push notification for content-creating events, if any."""
    if isinstance(event, LegacyMessageCreated) and event.push_user_ids:
        return PushNotice(
            user_ids=event.push_user_ids,
            title="New message",
            body=str(event.message.get("body") or ""),
            url="/dashboard/messages",
        )
    if isinstance(event, LegacyReplyCreated) and event.push_user_ids:
        return PushNotice(
            user_ids=event.push_user_ids,
            title="New reply",
            body=str(event.reply.get("body") or ""),
            url="/dashboard/messages",
        )
    if isinstance(event, ConversationMessageCreated):
        targets = tuple(uid for uid in event.recipient_ids if uid != event.sender_id)
        if targets:
            return PushNotice(
                user_ids=targets,
                title="New message",
                body=str(event.message.get("body") or ""),
                url="/dashboard/messages",
            )
    return None
