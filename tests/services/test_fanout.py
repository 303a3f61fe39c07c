# tests/services/test_fanout.py
"""Tests for mapping domain events onto broadcast channels."""

import pytest

from marketplace_chat.core.delivery import DeliveryStatus
from marketplace_chat.services.fanout import (
    ConversationMessageCreated,
    ConversationRead,
    ConversationStarted,
    DeliveryChanged,
    LegacyMessageCreated,
    LegacyMessageDeleted,
    LegacyReplyCreated,
    LegacyReplyDeleted,
    LegacyStatusChanged,
    TypingSignal,
    dispatch,
    push_notice,
)

SELLER_CHANNEL = "private-seller-s1"
THREAD_CHANNEL = "private-thread-s1-buyer-example-com"


def _routes(event) -> list[tuple[str, str]]:
    return [(pub.channel, pub.event_name) for pub in dispatch(event)]


def test_new_legacy_content_reaches_both_parties() -> None:
    created = LegacyMessageCreated("s1", "buyer@example.com", {"id": "m1", "body": "hi"})
    assert _routes(created) == [(SELLER_CHANNEL, "message:new"), (THREAD_CHANNEL, "message:new")]

    reply = LegacyReplyCreated("s1", "buyer@example.com", {"id": "r1", "body": "hello"})
    assert _routes(reply) == [(SELLER_CHANNEL, "reply:new"), (THREAD_CHANNEL, "reply:new")]


def test_delivery_change_is_sent_to_the_other_party_only() -> None:
    seller_read = DeliveryChanged(
        entity_kind="message",
        entity_id="m1",
        new_status=DeliveryStatus.READ,
        seller_id="s1",
        buyer_email="buyer@example.com",
        receiver_role="seller",
    )
    publications = dispatch(seller_read)
    assert [(p.channel, p.event_name) for p in publications] == [(THREAD_CHANNEL, "message:read")]
    assert publications[0].payload == {"id": "m1", "delivery_status": "read"}

    buyer_delivered = DeliveryChanged(
        entity_kind="reply",
        entity_id="r1",
        new_status=DeliveryStatus.DELIVERED,
        seller_id="s1",
        buyer_email="buyer@example.com",
        receiver_role="buyer",
    )
    assert _routes(buyer_delivered) == [(SELLER_CHANNEL, "reply:delivered")]


def test_status_change_and_deletions() -> None:
    assert _routes(LegacyStatusChanged("s1", "m1", "archived")) == [
        (SELLER_CHANNEL, "message:updated")
    ]

    deleted = dispatch(LegacyMessageDeleted("s1", "buyer@example.com", "m1"))
    assert {p.channel for p in deleted} == {SELLER_CHANNEL, THREAD_CHANNEL}
    assert deleted[0].payload == {"id": "m1", "sender_email": "buyer@example.com"}

    reply_deleted = dispatch(LegacyReplyDeleted("s1", "buyer@example.com", "r1", "m1"))
    assert [p.event_name for p in reply_deleted] == ["reply:deleted", "reply:deleted"]
    assert reply_deleted[0].payload == {"id": "r1", "message_id": "m1"}


def test_conversation_events() -> None:
    assert _routes(ConversationStarted("c1", "u1", "u2")) == [
        ("private-user-u2", "chat:conversation:started")
    ]
    assert _routes(ConversationRead("c1", "u1")) == [("private-user-u1", "chat:conversation:read")]

    typing = dispatch(TypingSignal("c1", "u1", True, "2026-01-01T00:00:00+00:00"))
    assert typing[0].channel == "private-conversation-c1"
    assert typing[0].payload["typing"] is True


def test_conversation_message_skips_the_sender() -> None:
    event = ConversationMessageCreated(
        conversation_id="c1",
        sender_id="u1",
        message={"id": "x1", "body": "hey"},
        recipient_ids=("u1", "u2"),
    )
    assert _routes(event) == [
        ("private-conversation-c1", "chat:message:new"),
        ("private-user-u2", "chat:conversation:updated"),
    ]


def test_unknown_event_is_rejected() -> None:
    with pytest.raises(TypeError):
        dispatch(object())  # type: ignore[arg-type]


def test_push_notices_for_content_events() -> None:
    created = LegacyMessageCreated("s1", "b@example.com", {"body": "hi"}, push_user_ids=("s1",))
    notice = push_notice(created)
    assert notice is not None
    assert notice.user_ids == ("s1",)
    assert notice.title == "New message"

    reply = LegacyReplyCreated("s1", "b@example.com", {"body": "yo"}, push_user_ids=())
    assert push_notice(reply) is None
    assert push_notice(LegacyStatusChanged("s1", "m1", "read")) is None
