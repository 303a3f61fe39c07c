# src/marketplace_chat/models/__init__.py
"""SQLAlchemy models for the marketplace chat application."""

from .conversation import ChatMessage, Conversation, ConversationMember
from .message import Message, MessageReply
from .push_subscription import PushSubscription
from .user import UserProfile

__all__ = [
    "ChatMessage", "Conversation", "ConversationMember",
    "Message", "MessageReply",
    "PushSubscription",
    "UserProfile",
]
