"""Capability shared by the legacy thread and symmetric conversation stores."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol

from marketplace_chat.core.settings import settings
from marketplace_chat.db.time import ensure_aware
from marketplace_chat.models import UserProfile
from marketplace_chat.services.errors import InvalidRequestError
from marketplace_chat.services.fanout import DomainEvent

Direction = Literal["incoming", "outgoing"]

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class TimelineItem:
    """One entry of a merged history, tagged relative to the viewer."""

    id: str
    type: Direction
    body: str
    created_at: datetime
    message_id: str | None = None
    sender_id: str | None = None
    sender_name: str | None = None
    sender_email: str | None = None
    avatar_url: str | None = None
    delivery_status: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "body": self.body,
            "created_at": self.created_at.isoformat(),
        }
        for key in ("message_id", "sender_id", "sender_name", "sender_email", "avatar_url"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        # Only the author cares about the delivery state of an item.
        if self.type == "outgoing" and self.delivery_status is not None:
            data["delivery_status"] = self.delivery_status
        return data


@dataclass
class WriteResult:
    """Persisted row plus the events to hand to the notifier after commit."""

    record: Any
    events: list[DomainEvent] = field(default_factory=list)


class MessageStore(Protocol):
    """Read-timeline/write-message capability implemented by both stores."""

    def timeline(self, thread_key: str, viewer: UserProfile) -> list[TimelineItem]:
        ...

    def post_message(self, sender: UserProfile, thread_key: str, body: str) -> WriteResult:
        ...


def sanitize_body(raw: object, max_length: int | None = None) -> str:
    """Strip NUL characters, cap the length and trim; raise if nothing is left."""
    limit = max_length or settings.message_body_max_length
    text = str(raw if raw is not None else "").replace("\x00", "")[:limit].strip()
    if not text:
        raise InvalidRequestError("Message body is required")
    return text


def normalize_email(raw: object) -> str:
    email = str(raw or "").replace("\x00", "").strip().lower()
    if not _EMAIL.match(email):
        raise InvalidRequestError("A valid email address is required")
    return email


def sort_timeline(items: Sequence[TimelineItem]) -> list[TimelineItem]:
    return sorted(items, key=lambda item: ensure_aware(item.created_at))
