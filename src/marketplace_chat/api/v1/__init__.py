# src/marketplace_chat/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    broadcast_router,
    conversations_router,
    messages_router,
    push_router,
    replies_router,
)

__all__ = [
    "broadcast_router",
    "conversations_router",
    "messages_router",
    "push_router",
    "replies_router",
]
