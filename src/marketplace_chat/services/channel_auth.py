"""Per-subscription authorization for private broadcast channels."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace_chat.core.channels import ChannelFamily, parse_channel, thread_seller_for_email
from marketplace_chat.models import ConversationMember, UserProfile
from marketplace_chat.services.errors import InvalidRequestError, PermissionDeniedError

logger = logging.getLogger(__name__)


def authorize_subscription(db: Session, user: UserProfile, channel_name: str) -> None:
    """Raise unless ``user`` may subscribe to ``channel_name``.

    Unknown or non-private names raise ``InvalidRequestError``; a failed
    ownership check raises ``PermissionDeniedError``. Nothing is cached.
    """
    parsed = parse_channel(channel_name)
    if parsed is None:
        raise InvalidRequestError("Unsupported channel")

    if parsed.family in (ChannelFamily.SELLER, ChannelFamily.USER):
        allowed = parsed.owner_id == user.id
    elif parsed.family is ChannelFamily.THREAD:
        seller_id = thread_seller_for_email(parsed.remainder, user.email)
        # The slug boundary is only exact when the rest names a real seller.
        allowed = seller_id is not None and db.get(UserProfile, seller_id) is not None
    else:
        allowed = _is_member(db, parsed.remainder, user.id)

    if not allowed:
        logger.info("Rejected subscription of %s to %s", user.id, channel_name)
        raise PermissionDeniedError("Not allowed to subscribe to this channel")


def _is_member(db: Session, conversation_id: str, user_id: str) -> bool:
    stmt = select(ConversationMember.user_id).where(
        ConversationMember.conversation_id == conversation_id,
        ConversationMember.user_id == user_id,
    )
    return db.execute(stmt).first() is not None
