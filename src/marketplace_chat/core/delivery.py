# src/marketplace_chat/core/delivery.py
"""Per-message delivery state machine.

Delivery status progresses ``sent -> delivered -> read``. Transitions only move
forward; any request that would not move the status forward returns the
current status unchanged so duplicate or retried acknowledgements are safe.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DeliveryStatus(str, Enum):
    """Ordered delivery states for a message or reply."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _ORDER[self]

    @classmethod
    def parse(cls, value: str | DeliveryStatus) -> DeliveryStatus:
        """Coerce a raw status string, raising ``ValueError`` when unknown."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


_ORDER = {
    DeliveryStatus.SENT: 0,
    DeliveryStatus.DELIVERED: 1,
    DeliveryStatus.READ: 2,
}


def advance(current: DeliveryStatus | str, target: DeliveryStatus | str) -> DeliveryStatus:
    """Return the status after requesting ``target`` from ``current``.

    Forward moves (including ``sent -> read``) yield ``target``. Equal or
    backward requests yield ``current``; downgrades are never an error.
    """
    current_status = DeliveryStatus.parse(current)
    target_status = DeliveryStatus.parse(target)
    if target_status.rank > current_status.rank:
        return target_status
    return current_status


def is_noop(current: DeliveryStatus | str, target: DeliveryStatus | str) -> bool:
    """Return True when requesting ``target`` would leave ``current`` unchanged."""
    return advance(current, target) == DeliveryStatus.parse(current)


@dataclass(frozen=True)
class Receiver:
    """Designated receiver of a legacy message or reply.

    A seller receiver is identified by account id. A buyer receiver is
    identified by the email address stored on the thread seed.
    """

    role: str
    user_id: str | None = None
    email: str | None = None

    def matches(self, caller_id: str, caller_email: str | None) -> bool:
        if self.role == "seller":
            return bool(self.user_id) and self.user_id == caller_id
        if not self.email or not caller_email:
            return False
        return self.email.strip().lower() == caller_email.strip().lower()


def seed_receiver(seller_id: str) -> Receiver:
    """Receiver of a seed message: always the seller."""
    return Receiver(role="seller", user_id=seller_id)


def reply_receiver(seller_id: str, buyer_email: str, reply_sender_id: str) -> Receiver:
    """Receiver of a reply: whichever party did not author it."""
    if reply_sender_id == seller_id:
        return Receiver(role="buyer", email=buyer_email)
    return Receiver(role="seller", user_id=seller_id)
