# src/marketplace_chat/models/message.py
"""Models for legacy seller threads: a seed message plus linear replies."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_chat.core.delivery import DeliveryStatus
from marketplace_chat.db.session import Base
from marketplace_chat.db.time import utcnow

from ._ids import new_id

MAILBOX_STATUSES = frozenset({"new", "read", "replied", "archived", "spam", "blocked"})

# Seed body used when the seller opens a thread before the buyer wrote anything.
PLACEHOLDER_BODY = "—"


class Message(Base):
    """Seed contact from a buyer to a seller; anchors the whole thread.

    Threads are keyed by ``(seller_id, sender_email)``. The buyer does not need
    an account to be the sender of a seed message.
    """

    __tablename__ = "message"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    seller_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id"), nullable=False, index=True
    )
    sender_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    sender_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Mailbox triage, independent of delivery progression.
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="new")
    delivery_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DeliveryStatus.SENT.value
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    @property
    def is_placeholder(self) -> bool:
        """Return True for the seed created by a seller-initiated thread."""
        return (self.body or "").strip() == PLACEHOLDER_BODY and self.status == "replied"


class MessageReply(Base):
    """Reply in a legacy thread, always authored by an identity-bearing user."""

    __tablename__ = "message_reply"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    message_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("message.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_profile.id"), nullable=False
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DeliveryStatus.SENT.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
