# src/marketplace_chat/models/conversation.py
"""Models for symmetric two-member conversations."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_chat.db.session import Base
from marketplace_chat.db.time import utcnow

from ._ids import new_id


class Conversation(Base):
    """Conversation anchored by an order-independent participant pair key."""

    __tablename__ = "chat_conversation"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # At most one conversation per unordered pair of participants.
    dm_key: Mapped[str] = mapped_column(String(160), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    preview: Mapped[str | None] = mapped_column(Text, nullable=True)


class ConversationMember(Base):
    """Per-member read bookkeeping for a conversation."""

    __tablename__ = "chat_conversation_member"
    __table_args__ = (CheckConstraint("unread_count >= 0", name="ck_member_unread_non_negative"),)

    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("chat_conversation.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_profile.id", ondelete="CASCADE"),
        primary_key=True,
    )
    last_read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Soft hide for this member only; the other member still sees the conversation.
    hidden_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ChatMessage(Base):
    """Message posted into a symmetric conversation."""

    __tablename__ = "chat_message"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("chat_conversation.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id"), nullable=False
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
