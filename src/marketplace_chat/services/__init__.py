# src/marketplace_chat/services/__init__.py
"""Business logic services for the marketplace chat application."""

from .conversations import ConversationStore
from .legacy_threads import LegacyThreadStore
from .notifier import Notifier
from .push import PushService
from .rate_limit import TypingRateLimiter

__all__ = [
    "ConversationStore",
    "LegacyThreadStore",
    "Notifier",
    "PushService",
    "TypingRateLimiter",
]
