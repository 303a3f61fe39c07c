"""Symmetric two-member conversations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Literal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace_chat.db.time import ensure_aware, utcnow
from marketplace_chat.models import ChatMessage, Conversation, ConversationMember, UserProfile
from marketplace_chat.services.display import display_name, normalize_avatar_url
from marketplace_chat.services.errors import (
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from marketplace_chat.services.fanout import (
    ConversationMessageCreated,
    ConversationRead,
    ConversationStarted,
    TypingSignal,
)
from marketplace_chat.services.rate_limit import TypingRateLimiter
from marketplace_chat.services.store import TimelineItem, WriteResult, sanitize_body

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 140
HISTORY_MAX_LIMIT = 200
SNAPSHOT_RECENT = 15


def dm_key(user_a: str, user_b: str) -> str:
    """Order-independent key for the conversation between two users."""
    a = (user_a or "").strip()
    b = (user_b or "").strip()
    if not a or not b:
        raise InvalidRequestError("Both participant ids are required")
    low, high = sorted((a, b))
    return f"dm:{low}-{high}"


class ConversationStore:
    """Persistence and rules for symmetric conversations."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _member(self, conversation_id: str, user_id: str) -> ConversationMember | None:
        return self.db.get(ConversationMember, (conversation_id, user_id))

    def _require_member(self, conversation_id: str, user_id: str) -> ConversationMember:
        member = self._member(conversation_id, user_id)
        if member is None:
            raise PermissionDeniedError("Not a member of this conversation")
        return member

    def _members(self, conversation_id: str) -> list[ConversationMember]:
        stmt = select(ConversationMember).where(
            ConversationMember.conversation_id == conversation_id
        )
        return list(self.db.execute(stmt).scalars().all())

    def _profiles(self, user_ids: set[str]) -> dict[str, UserProfile]:
        if not user_ids:
            return {}
        try:
            rows = self.db.execute(
                select(UserProfile).where(UserProfile.id.in_(user_ids))
            ).scalars().all()
        except SQLAlchemyError as exc:
            logger.warning("Profile lookup failed; using fallbacks: %s", exc)
            return {}
        return {row.id: row for row in rows}

    # --- writes --------------------------------------------------------------------

    def start(self, initiator: UserProfile, participant_id: str) -> WriteResult:
        """Find or create the conversation between the two users.

        Calling it again for the same pair returns the same conversation.
        """
        participant_id = (participant_id or "").strip()
        if not participant_id:
            raise InvalidRequestError("Participant id is required")
        if participant_id == initiator.id:
            raise InvalidRequestError("You cannot start a conversation with yourself")
        if self.db.get(UserProfile, participant_id) is None:
            raise NotFoundError("Participant not found")

        key = dm_key(initiator.id, participant_id)
        conversation, created = self._upsert_conversation(key)

        added = False
        for user_id in (initiator.id, participant_id):
            if self._member(conversation.id, user_id) is None:
                self.db.add(ConversationMember(conversation_id=conversation.id, user_id=user_id))
                added = True
        self.db.commit()

        events = []
        if created or added:
            logger.info("Conversation %s started by %s", conversation.id, initiator.id)
            events.append(
                ConversationStarted(
                    conversation_id=conversation.id,
                    initiator_id=initiator.id,
                    participant_id=participant_id,
                )
            )
        return WriteResult(record=conversation, events=events)

    def _upsert_conversation(self, key: str) -> tuple[Conversation, bool]:
        stmt = select(Conversation).where(Conversation.dm_key == key)
        existing = self.db.execute(stmt).scalar_one_or_none()
        if existing is not None:
            return existing, False

        conversation = Conversation(dm_key=key)
        try:
            with self.db.begin_nested():
                self.db.add(conversation)
        except IntegrityError:
            # Another request created it first.
            return self.db.execute(stmt).scalar_one(), False
        return conversation, True

    def post_message(self, sender: UserProfile, conversation_id: str, body: str) -> WriteResult:
        text = sanitize_body(body)
        conversation = self.db.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        self._require_member(conversation_id, sender.id)

        now = utcnow()
        message = ChatMessage(
            conversation_id=conversation_id,
            sender_id=sender.id,
            body=text,
            created_at=now,
        )
        self.db.add(message)

        recipients = [
            member.user_id
            for member in self._members(conversation_id)
            if member.user_id != sender.id
        ]
        # Incremented in SQL so concurrent sends never lose a count.
        self.db.execute(
            update(ConversationMember)
            .where(
                ConversationMember.conversation_id == conversation_id,
                ConversationMember.user_id != sender.id,
            )
            .values(unread_count=ConversationMember.unread_count + 1, hidden_at=None)
            .execution_options(synchronize_session="fetch")
        )

        conversation.preview = text[:PREVIEW_LENGTH]
        conversation.last_message_at = now
        self.db.commit()
        self.db.refresh(message)

        payload = self.message_payload(message)
        payload.update(self._sender_fields(sender))
        event = ConversationMessageCreated(
            conversation_id=conversation_id,
            sender_id=sender.id,
            message=payload,
            recipient_ids=tuple(recipients),
        )
        return WriteResult(record=message, events=[event])

    def mark_read(self, reader: UserProfile, conversation_id: str) -> WriteResult:
        member = self._require_member(conversation_id, reader.id)
        member.unread_count = 0
        member.last_read_at = utcnow()
        self.db.commit()
        event = ConversationRead(conversation_id=conversation_id, reader_id=reader.id)
        return WriteResult(record=member, events=[event])

    def hide(self, user: UserProfile, conversation_id: str) -> WriteResult:
        """Hide the conversation for ``user`` only."""
        member = self._require_member(conversation_id, user.id)
        if member.hidden_at is None:
            member.hidden_at = utcnow()
            self.db.commit()
        return WriteResult(record=member)

    def unhide(self, user: UserProfile, conversation_id: str) -> WriteResult:
        member = self._require_member(conversation_id, user.id)
        if member.hidden_at is not None:
            member.hidden_at = None
            self.db.commit()
        return WriteResult(record=member)

    def typing(
        self,
        user: UserProfile,
        conversation_id: str,
        typing: bool,
        limiter: TypingRateLimiter,
    ) -> WriteResult:
        """Produce a typing signal unless the limiter throttles it.

        ``record`` is True when the signal was throttled.
        """
        self._require_member(conversation_id, user.id)
        if not limiter.allow(user.id, conversation_id):
            return WriteResult(record=True)
        event = TypingSignal(
            conversation_id=conversation_id,
            user_id=user.id,
            typing=bool(typing),
            at=utcnow().isoformat(),
        )
        return WriteResult(record=False, events=[event])

    # --- reads ---------------------------------------------------------------------

    @staticmethod
    def message_payload(message: ChatMessage) -> dict[str, Any]:
        return {
            "id": message.id,
            "conversation_id": message.conversation_id,
            "sender_id": message.sender_id,
            "body": message.body,
            "created_at": message.created_at.isoformat() if message.created_at else None,
        }

    @staticmethod
    def _sender_fields(profile: UserProfile | None, fallback: str | None = None) -> dict[str, Any]:
        email = profile.email if profile is not None else None
        local_part = profile.email_local_part if email else fallback
        return {
            "sender_name": display_name(profile, local_part),
            "sender_email": email,
            "avatar_url": normalize_avatar_url(profile.avatar_url if profile else None),
        }

    def list_for(self, user: UserProfile, include_hidden: bool = False) -> list[dict[str, Any]]:
        """Conversations of ``user``, newest activity first, with counterpart details."""
        stmt = (
            select(ConversationMember, Conversation)
            .join(Conversation, Conversation.id == ConversationMember.conversation_id)
            .where(ConversationMember.user_id == user.id)
        )
        if not include_hidden:
            stmt = stmt.where(ConversationMember.hidden_at.is_(None))
        rows = self.db.execute(stmt).all()
        if not rows:
            return []

        conversation_ids = [conversation.id for _, conversation in rows]
        counterpart_by_conversation: dict[str, str] = {}
        others = self.db.execute(
            select(ConversationMember.conversation_id, ConversationMember.user_id).where(
                ConversationMember.conversation_id.in_(conversation_ids),
                ConversationMember.user_id != user.id,
            )
        ).all()
        for conversation_id, other_id in others:
            counterpart_by_conversation.setdefault(conversation_id, other_id)
        profiles = self._profiles(set(counterpart_by_conversation.values()))

        items = []
        for member, conversation in rows:
            counterpart_id = counterpart_by_conversation.get(conversation.id)
            profile = profiles.get(counterpart_id) if counterpart_id else None
            last_at = conversation.last_message_at or conversation.created_at
            items.append(
                {
                    "id": conversation.id,
                    "counterparty_id": counterpart_id,
                    "counterparty_name": display_name(profile, counterpart_id),
                    "counterparty_avatar_url": normalize_avatar_url(
                        profile.avatar_url if profile else None
                    ),
                    "preview": conversation.preview,
                    "last_created_at": ensure_aware(last_at),
                    "unread_count": max(0, member.unread_count or 0),
                    "hidden": member.hidden_at is not None,
                }
            )
        items.sort(key=lambda item: item["last_created_at"], reverse=True)
        return items

    def history(
        self,
        viewer: UserProfile,
        conversation_id: str,
        *,
        limit: int = 50,
        before: datetime | None = None,
        after: datetime | None = None,
        order: Literal["asc", "desc"] = "asc",
    ) -> list[TimelineItem]:
        """A page of messages with sender enrichment, tagged relative to ``viewer``.

        ``before`` takes precedence over ``after`` when both are given.
        """
        self._require_member(conversation_id, viewer.id)
        limit = max(1, min(HISTORY_MAX_LIMIT, int(limit)))

        stmt = select(ChatMessage).where(ChatMessage.conversation_id == conversation_id)
        if before is not None:
            stmt = stmt.where(ChatMessage.created_at < before)
        elif after is not None:
            stmt = stmt.where(ChatMessage.created_at > after)
        if order == "desc":
            stmt = stmt.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        else:
            stmt = stmt.order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        rows = self.db.execute(stmt.limit(limit)).scalars().all()

        profiles = self._profiles({row.sender_id for row in rows})
        items = []
        for row in rows:
            fields = self._sender_fields(profiles.get(row.sender_id), row.sender_id)
            items.append(
                TimelineItem(
                    id=row.id,
                    type="outgoing" if row.sender_id == viewer.id else "incoming",
                    body=row.body,
                    created_at=row.created_at,
                    message_id=row.id,
                    sender_id=row.sender_id,
                    **fields,
                )
            )
        return items

    def timeline(self, thread_key: str, viewer: UserProfile) -> list[TimelineItem]:
        return self.history(viewer, thread_key, limit=HISTORY_MAX_LIMIT)

    def inbox_snapshot(self, user: UserProfile) -> dict[str, Any]:
        """Unread total across visible conversations and the most recent ones."""
        conversations = self.list_for(user)
        unread = sum(item["unread_count"] for item in conversations)
        recent = [
            {
                "id": item["id"],
                "created_at": item["last_created_at"],
                "counterparty_id": item["counterparty_id"],
                "sender_name": item["counterparty_name"],
                "subject": (item["preview"] or "").strip() or "New message",
            }
            for item in conversations[:SNAPSHOT_RECENT]
        ]
        return {"unread_count": unread, "recent_threads": recent}
