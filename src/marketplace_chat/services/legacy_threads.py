"""Legacy seller threads: one seed message per buyer contact plus linear replies.

A thread is identified by the pair ``(seller_id, buyer_email)``. Its thread key
is ``"{seller_id}:{buyer_email}"``. The buyer may or may not have an account;
replies are always authored by an account.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from marketplace_chat.core.delivery import (
    DeliveryStatus,
    advance,
    reply_receiver,
    seed_receiver,
)
from marketplace_chat.db.time import utcnow
from marketplace_chat.models import Message, MessageReply, UserProfile
from marketplace_chat.models.message import MAILBOX_STATUSES, PLACEHOLDER_BODY
from marketplace_chat.services.display import display_name
from marketplace_chat.services.entitlement import require_messaging
from marketplace_chat.services.errors import (
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from marketplace_chat.services.fanout import (
    DeliveryChanged,
    LegacyMessageCreated,
    LegacyMessageDeleted,
    LegacyReplyCreated,
    LegacyReplyDeleted,
    LegacyStatusChanged,
)
from marketplace_chat.services.store import (
    TimelineItem,
    WriteResult,
    normalize_email,
    sanitize_body,
    sort_timeline,
)

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Inquiry"
SUBJECT_MAX_LENGTH = 200
SUBJECT_MIN_LENGTH = 3

# Conditional update attempts before giving up and reporting the stored state.
_MAX_TRANSITION_ATTEMPTS = 5

# Triage states that a new buyer message should not pull back into "new".
_STICKY_STATUSES = frozenset({"archived", "spam", "blocked"})


def thread_key(seller_id: str, buyer_email: str) -> str:
    return f"{seller_id}:{buyer_email.strip().lower()}"


def split_thread_key(key: str) -> tuple[str, str]:
    seller_id, sep, email = (key or "").partition(":")
    if not sep or not seller_id or not email:
        raise InvalidRequestError("Invalid thread key")
    return seller_id, email.strip().lower()


def subject_from_body(body: str) -> str:
    """First line of the body, capped; short first lines fall back to a default."""
    first_line = body.split("\n", 1)[0][:SUBJECT_MAX_LENGTH].strip()
    return first_line if len(first_line) >= SUBJECT_MIN_LENGTH else DEFAULT_SUBJECT


def conditional_advance(
    db: Session,
    model: type[Message] | type[MessageReply],
    entity_id: str,
    expected: DeliveryStatus | str,
    target: DeliveryStatus | str,
) -> tuple[DeliveryStatus, bool]:
    """Advance a row's delivery status with an optimistic conditional update.

    The ``UPDATE`` only matches while the stored status still equals
    ``expected``. A writer that loses the race re-reads the row and re-applies
    ``advance`` against what it finds, so every caller returns the winning
    status. Returns ``(status, applied)``.
    """
    current = DeliveryStatus.parse(expected)
    wanted = DeliveryStatus.parse(target)

    for _ in range(_MAX_TRANSITION_ATTEMPTS):
        next_status = advance(current, wanted)
        if next_status == current:
            return current, False

        result = db.execute(
            update(model)
            .where(model.id == entity_id, model.delivery_status == current.value)
            .values(delivery_status=next_status.value)
        )
        if result.rowcount:
            db.commit()
            return next_status, True

        stored = db.execute(
            select(model.delivery_status).where(model.id == entity_id)
        ).scalar_one_or_none()
        if stored is None:
            raise NotFoundError("Message not found")
        current = DeliveryStatus.parse(stored)

    logger.warning("Gave up advancing %s %s after repeated conflicts", model.__name__, entity_id)
    return current, False


class LegacyThreadStore:
    """Persistence and rules for seed-plus-replies threads."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # --- lookups -------------------------------------------------------------------

    def _get_user(self, user_id: str) -> UserProfile | None:
        return self.db.get(UserProfile, user_id)

    def _get_message(self, message_id: str, *, include_deleted: bool = False) -> Message:
        message = self.db.get(Message, message_id)
        if message is None or (message.deleted_at is not None and not include_deleted):
            raise NotFoundError("Message not found")
        return message

    def _get_reply(self, reply_id: str, *, include_deleted: bool = False) -> MessageReply:
        reply = self.db.get(MessageReply, reply_id)
        if reply is None or (reply.deleted_at is not None and not include_deleted):
            raise NotFoundError("Reply not found")
        return reply

    def _live_seed(self, seller_id: str, buyer_email: str) -> Message | None:
        stmt = (
            select(Message)
            .where(
                Message.seller_id == seller_id,
                func.lower(Message.sender_email) == buyer_email.lower(),
                Message.deleted_at.is_(None),
            )
            .order_by(Message.created_at.asc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def _user_ids_for_email(self, email: str) -> tuple[str, ...]:
        stmt = select(UserProfile.id).where(func.lower(UserProfile.email) == email.lower())
        return tuple(self.db.execute(stmt).scalars().all())

    @staticmethod
    def _is_buyer(message: Message, user: UserProfile) -> bool:
        return bool(user.email) and message.sender_email.lower() == user.email.lower()

    # --- payloads ------------------------------------------------------------------

    @staticmethod
    def message_payload(message: Message) -> dict[str, Any]:
        return {
            "id": message.id,
            "seller_id": message.seller_id,
            "sender_name": message.sender_name,
            "sender_email": message.sender_email,
            "subject": message.subject,
            "body": message.body,
            "status": message.status,
            "delivery_status": message.delivery_status,
            "created_at": message.created_at.isoformat() if message.created_at else None,
        }

    @staticmethod
    def reply_payload(reply: MessageReply) -> dict[str, Any]:
        return {
            "id": reply.id,
            "message_id": reply.message_id,
            "sender_id": reply.sender_id,
            "body": reply.body,
            "delivery_status": reply.delivery_status,
            "created_at": reply.created_at.isoformat() if reply.created_at else None,
        }

    # --- writes --------------------------------------------------------------------

    def contact_seller(self, buyer: UserProfile, seller_id: str, body: str) -> WriteResult:
        """Buyer's contact with a seller. Starts a thread or appends to the live one."""
        seller_id = (seller_id or "").strip()
        if not seller_id:
            raise InvalidRequestError("Seller id is required")
        text = sanitize_body(body)
        if seller_id == buyer.id:
            raise InvalidRequestError("You cannot message yourself")

        seller = self._get_user(seller_id)
        if seller is None:
            raise NotFoundError("Seller not found")
        require_messaging(seller)

        existing = self._live_seed(seller_id, buyer.email)
        if existing is not None:
            return self._append_reply(existing, buyer, text)

        message = Message(
            seller_id=seller_id,
            sender_name=display_name(buyer, buyer.email),
            sender_email=buyer.email.lower(),
            subject=subject_from_body(text),
            body=text,
            status="new",
            delivery_status=DeliveryStatus.SENT.value,
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        logger.info("Buyer %s opened thread %s with seller %s", buyer.id, message.id, seller_id)

        event = LegacyMessageCreated(
            seller_id=seller_id,
            buyer_email=message.sender_email,
            message=self.message_payload(message),
            push_user_ids=(seller_id,),
        )
        return WriteResult(record=message, events=[event])

    def start_by_seller(self, seller: UserProfile, buyer_email: str, body: str) -> WriteResult:
        """Seller opens a thread with a buyer email.

        A placeholder seed stands in for the buyer's missing first message and
        the seller's text is stored as the first reply.
        """
        require_messaging(seller)
        email = normalize_email(buyer_email)
        text = sanitize_body(body)
        if seller.email and email == seller.email.lower():
            raise InvalidRequestError("You cannot message yourself")

        seed = self._live_seed(seller.id, email)
        if seed is None:
            buyer_profile = self.db.execute(
                select(UserProfile).where(func.lower(UserProfile.email) == email)
            ).scalars().first()
            seed = Message(
                seller_id=seller.id,
                sender_name=display_name(buyer_profile, email.split("@", 1)[0]),
                sender_email=email,
                subject=subject_from_body(text),
                body=PLACEHOLDER_BODY,
                status="replied",
                delivery_status=DeliveryStatus.SENT.value,
            )
            self.db.add(seed)
            self.db.flush()

        return self._append_reply(seed, seller, text)

    def reply_as_seller(self, seller: UserProfile, message_id: str, body: str) -> WriteResult:
        message = self._get_message(message_id)
        if message.seller_id != seller.id:
            raise PermissionDeniedError("Only the seller can reply to this thread")
        require_messaging(seller)
        return self._append_reply(message, seller, sanitize_body(body))

    def reply_as_buyer(self, buyer: UserProfile, message_id: str, body: str) -> WriteResult:
        message = self._get_message(message_id)
        if not self._is_buyer(message, buyer):
            raise PermissionDeniedError("Only the buyer can reply to this thread")
        seller = self._get_user(message.seller_id)
        if seller is None:
            raise NotFoundError("Seller not found")
        require_messaging(seller)
        return self._append_reply(message, buyer, sanitize_body(body))

    def post_message(self, sender: UserProfile, thread_key_value: str, body: str) -> WriteResult:
        """Write into the thread named by ``thread_key_value`` as either party."""
        seller_id, buyer_email = split_thread_key(thread_key_value)
        if sender.id == seller_id:
            seed = self._live_seed(seller_id, buyer_email)
            if seed is None:
                return self.start_by_seller(sender, buyer_email, body)
            return self.reply_as_seller(sender, seed.id, body)
        if not sender.email or sender.email.lower() != buyer_email:
            raise PermissionDeniedError("Not a participant of this thread")
        return self.contact_seller(sender, seller_id, body)

    def _append_reply(self, message: Message, author: UserProfile, text: str) -> WriteResult:
        reply = MessageReply(
            message_id=message.id,
            sender_id=author.id,
            body=text,
            delivery_status=DeliveryStatus.SENT.value,
        )
        self.db.add(reply)

        by_seller = author.id == message.seller_id
        if not message.is_placeholder:
            if by_seller and message.status in ("new", "read"):
                message.status = "replied"
            elif not by_seller and message.status not in _STICKY_STATUSES:
                message.status = "new"
        message.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(reply)

        push_targets = (
            self._user_ids_for_email(message.sender_email) if by_seller else (message.seller_id,)
        )
        event = LegacyReplyCreated(
            seller_id=message.seller_id,
            buyer_email=message.sender_email,
            reply=self.reply_payload(reply),
            push_user_ids=push_targets,
        )
        return WriteResult(record=reply, events=[event])

    def set_status(self, seller: UserProfile, message_id: str, status: str) -> WriteResult:
        """Change the mailbox triage status; delivery status is untouched."""
        require_messaging(seller)
        normalized = (status or "").strip().lower()
        if normalized not in MAILBOX_STATUSES:
            raise InvalidRequestError("Invalid status")
        message = self._get_message(message_id)
        if message.seller_id != seller.id:
            raise PermissionDeniedError("Only the seller can change this message")

        message.status = normalized
        self.db.commit()
        self.db.refresh(message)
        event = LegacyStatusChanged(
            seller_id=message.seller_id,
            message_id=message.id,
            status=message.status,
        )
        return WriteResult(record=message, events=[event])

    def mark_message(self, caller: UserProfile, message_id: str, target: str) -> WriteResult:
        """Receiver acknowledgement for a seed message. Returns the resulting status."""
        wanted = DeliveryStatus.parse(target)
        message = self._get_message(message_id)
        if not seed_receiver(message.seller_id).matches(caller.id, caller.email):
            raise PermissionDeniedError("Only the receiver can acknowledge this message")

        if message.is_placeholder:
            return WriteResult(record=DeliveryStatus.parse(message.delivery_status))

        status, applied = conditional_advance(
            self.db, Message, message.id, message.delivery_status, wanted
        )
        events = []
        if applied:
            events.append(
                DeliveryChanged(
                    entity_kind="message",
                    entity_id=message.id,
                    new_status=status,
                    seller_id=message.seller_id,
                    buyer_email=message.sender_email,
                    receiver_role="seller",
                )
            )
        return WriteResult(record=status, events=events)

    def mark_reply(self, caller: UserProfile, reply_id: str, target: str) -> WriteResult:
        """Receiver acknowledgement for a reply. Returns the resulting status."""
        wanted = DeliveryStatus.parse(target)
        reply = self._get_reply(reply_id)
        message = self._get_message(reply.message_id, include_deleted=True)
        receiver = reply_receiver(message.seller_id, message.sender_email, reply.sender_id)
        if not receiver.matches(caller.id, caller.email):
            raise PermissionDeniedError("Only the receiver can acknowledge this reply")

        status, applied = conditional_advance(
            self.db, MessageReply, reply.id, reply.delivery_status, wanted
        )
        events = []
        if applied:
            events.append(
                DeliveryChanged(
                    entity_kind="reply",
                    entity_id=reply.id,
                    new_status=status,
                    seller_id=message.seller_id,
                    buyer_email=message.sender_email,
                    receiver_role="buyer" if receiver.role == "buyer" else "seller",
                )
            )
        return WriteResult(record=status, events=events)

    def delete_message(self, buyer: UserProfile, message_id: str) -> WriteResult:
        """Buyer soft-deletes their seed message. Repeats are successes."""
        message = self._get_message(message_id, include_deleted=True)
        if not self._is_buyer(message, buyer):
            raise PermissionDeniedError("Only the buyer can delete this message")
        if message.deleted_at is not None:
            return WriteResult(record=message)

        message.deleted_at = utcnow()
        message.deleted_by = buyer.id
        self.db.commit()
        event = LegacyMessageDeleted(
            seller_id=message.seller_id,
            buyer_email=message.sender_email,
            message_id=message.id,
        )
        return WriteResult(record=message, events=[event])

    def delete_reply(self, author: UserProfile, reply_id: str) -> WriteResult:
        """Author soft-deletes their reply. Repeats are successes."""
        reply = self._get_reply(reply_id, include_deleted=True)
        if reply.sender_id != author.id:
            raise PermissionDeniedError("Only the author can delete this reply")
        if reply.deleted_at is not None:
            return WriteResult(record=reply)

        message = self._get_message(reply.message_id, include_deleted=True)
        reply.deleted_at = utcnow()
        reply.deleted_by = author.id
        self.db.commit()
        event = LegacyReplyDeleted(
            seller_id=message.seller_id,
            buyer_email=message.sender_email,
            reply_id=reply.id,
            message_id=message.id,
        )
        return WriteResult(record=reply, events=[event])

    # --- reads ---------------------------------------------------------------------

    def get_message(self, seller: UserProfile, message_id: str) -> Message:
        message = self._get_message(message_id)
        if message.seller_id != seller.id:
            raise PermissionDeniedError("Only the seller can view this message")
        return message

    def seller_inbox(self, seller: UserProfile, status: str | None = None) -> list[Message]:
        """Live seed messages for the seller, newest first."""
        require_messaging(seller)
        stmt = select(Message).where(
            Message.seller_id == seller.id,
            Message.deleted_at.is_(None),
        )
        if status:
            normalized = status.strip().lower()
            if normalized not in MAILBOX_STATUSES:
                raise InvalidRequestError("Invalid status")
            stmt = stmt.where(Message.status == normalized)
        stmt = stmt.order_by(Message.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def timeline(self, thread_key_value: str, viewer: UserProfile) -> list[TimelineItem]:
        """Merged, chronological history of a thread as seen by ``viewer``.

        Soft-deleted rows and the placeholder seed are left out. Items the
        viewer authored are ``outgoing`` and carry their delivery status.
        """
        seller_id, buyer_email = split_thread_key(thread_key_value)
        viewer_is_seller = viewer.id == seller_id
        viewer_is_buyer = bool(viewer.email) and viewer.email.lower() == buyer_email
        if not (viewer_is_seller or viewer_is_buyer):
            raise PermissionDeniedError("Not a participant of this thread")

        seeds = self.db.execute(
            select(Message)
            .where(
                Message.seller_id == seller_id,
                func.lower(Message.sender_email) == buyer_email,
            )
            .order_by(Message.created_at.asc())
        ).scalars().all()
        if not seeds:
            return []

        items: list[TimelineItem] = []
        for seed in seeds:
            if seed.deleted_at is not None or seed.is_placeholder or not seed.body.strip():
                continue
            items.append(
                TimelineItem(
                    id=f"msg-{seed.id}",
                    type="incoming" if viewer_is_seller else "outgoing",
                    body=seed.body,
                    created_at=seed.created_at,
                    message_id=seed.id,
                    sender_name=seed.sender_name,
                    sender_email=seed.sender_email,
                    delivery_status=seed.delivery_status or DeliveryStatus.SENT.value,
                )
            )

        replies = self.db.execute(
            select(MessageReply).where(
                MessageReply.message_id.in_([seed.id for seed in seeds]),
                MessageReply.deleted_at.is_(None),
            )
        ).scalars().all()
        for reply in replies:
            by_seller = reply.sender_id == seller_id
            outgoing = by_seller == viewer_is_seller
            items.append(
                TimelineItem(
                    id=f"rep-{reply.id}",
                    type="outgoing" if outgoing else "incoming",
                    body=reply.body,
                    created_at=reply.created_at,
                    message_id=reply.message_id,
                    sender_id=reply.sender_id,
                    delivery_status=reply.delivery_status or DeliveryStatus.SENT.value,
                )
            )

        return sort_timeline(items)

    def buyer_timeline(self, buyer: UserProfile, seller_id: str) -> list[TimelineItem]:
        seller_id = (seller_id or "").strip()
        if not seller_id:
            raise InvalidRequestError("Seller id is required")
        return self.timeline(thread_key(seller_id, buyer.email), buyer)

    def seller_timeline(self, seller: UserProfile, buyer_email: str) -> list[TimelineItem]:
        return self.timeline(thread_key(seller.id, normalize_email(buyer_email)), seller)
