# tests/services/test_notifier.py
import logging

import pytest

from marketplace_chat.services.broadcast import BroadcastError
from marketplace_chat.services.fanout import (
    ConversationMessageCreated,
    LegacyMessageCreated,
    LegacyStatusChanged,
)
from marketplace_chat.services.notifier import Notifier
from tests.fakes import RecordingBroadcast


class FailingBroadcast(RecordingBroadcast):
    async def trigger(self, channel, event_name, payload) -> None:
        raise BroadcastError("service unavailable")


class DisabledBroadcast(RecordingBroadcast):
    enabled = False


class FakePush:
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.notices = []

    def is_configured(self) -> bool:
        return self.configured

    def send_notice(self, notice):
        self.notices.append(notice)
        return {"sent": len(notice.user_ids), "failed": 0, "expired": 0}


def _created() -> LegacyMessageCreated:
    return LegacyMessageCreated(
        seller_id="s1",
        buyer_email="buyer@example.com",
        message={"id": "m1", "body": "hello"},
        push_user_ids=("s1",),
    )


@pytest.mark.asyncio
async def test_notify_publishes_and_pushes() -> None:
    broadcast = RecordingBroadcast()
    push = FakePush()
    await Notifier(broadcast, push).notify([_created(), LegacyStatusChanged("s1", "m1", "read")])

    assert [name for _, name, _ in broadcast.published] == [
        "message:new",
        "message:new",
        "message:updated",
    ]
    assert [notice.user_ids for notice in push.notices] == [("s1",)]


@pytest.mark.asyncio
async def test_broadcast_failures_are_logged_not_raised(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="marketplace_chat.services.notifier"):
        await Notifier(FailingBroadcast()).notify([_created()])
    assert "service unavailable" in caplog.text


@pytest.mark.asyncio
async def test_disabled_broadcast_and_unconfigured_push_are_skipped() -> None:
    broadcast = DisabledBroadcast()
    push = FakePush(configured=False)
    event = ConversationMessageCreated("c1", "u1", {"body": "hey"}, recipient_ids=("u2",))

    await Notifier(broadcast, push).notify([event])

    assert broadcast.published == []
    assert push.notices == []
