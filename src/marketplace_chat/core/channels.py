# src/marketplace_chat/core/channels.py
"""Broadcast channel naming.

All channels are private and require a per-subscription grant. Four families
exist::

    private-seller-{sellerId}
    private-thread-{sellerId}-{emailSlug}
    private-conversation-{conversationId}
    private-user-{userId}
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

PRIVATE_PREFIX = "private-"
SLUG_MAX_LENGTH = 64
ANONYMOUS_SLUG = "anonymous"

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_HYPHEN_RUN = re.compile(r"-+")


class ChannelFamily(str, Enum):
    SELLER = "seller"
    THREAD = "thread"
    CONVERSATION = "conversation"
    USER = "user"


@dataclass(frozen=True)
class ParsedChannel:
    """Channel name split into its family and the remainder after the prefix.

    For thread channels ``remainder`` is ``{sellerId}-{emailSlug}``. Both parts
    may contain hyphens, so the split is fixed by the caller's own slug.
    """

    family: ChannelFamily
    remainder: str

    @property
    def owner_id(self) -> str:
        return self.remainder


def email_slug(email: str | None) -> str:
    """Normalize an email address into a channel-safe slug.

    The transform is lossy and deterministic: lowercase, every character
    outside ``[a-z0-9]`` becomes ``-``, hyphen runs collapse, the result is
    capped at 64 characters. Empty input maps to ``"anonymous"``.
    """
    lowered = (email or "").strip().lower()
    slug = _HYPHEN_RUN.sub("-", _NON_ALNUM.sub("-", lowered))[:SLUG_MAX_LENGTH]
    return slug or ANONYMOUS_SLUG


def seller_channel(seller_id: str) -> str:
    return f"{PRIVATE_PREFIX}seller-{seller_id}"


def thread_channel(seller_id: str, buyer_email: str | None) -> str:
    return f"{PRIVATE_PREFIX}thread-{seller_id}-{email_slug(buyer_email)}"


def conversation_channel(conversation_id: str) -> str:
    return f"{PRIVATE_PREFIX}conversation-{conversation_id}"


def user_channel(user_id: str) -> str:
    return f"{PRIVATE_PREFIX}user-{user_id}"


def parse_channel(channel_name: str) -> ParsedChannel | None:
    """Return the family and remainder of a channel name, or None if unknown."""
    if not channel_name or not channel_name.startswith(PRIVATE_PREFIX):
        return None
    rest = channel_name[len(PRIVATE_PREFIX):]
    for family in ChannelFamily:
        marker = f"{family.value}-"
        if rest.startswith(marker):
            remainder = rest[len(marker):]
            if not remainder:
                return None
            return ParsedChannel(family=family, remainder=remainder)
    return None


def thread_seller_for_email(remainder: str, email: str | None) -> str | None:
    """Return the seller segment of a thread channel owned by ``email``.

    The remainder must end with ``-{slug}`` for the email's slug. What is left
    in front is returned for the caller to resolve to a real seller; None means
    the slug does not match.
    """
    suffix = f"-{email_slug(email)}"
    if len(remainder) <= len(suffix) or not remainder.endswith(suffix):
        return None
    return remainder[: -len(suffix)]
