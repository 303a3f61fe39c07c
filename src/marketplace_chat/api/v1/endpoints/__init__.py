# src/marketplace_chat/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .broadcast import router as broadcast_router
from .conversations import router as conversations_router
from .messages import router as messages_router
from .push import router as push_router
from .replies import router as replies_router

__all__ = [
    "broadcast_router",
    "conversations_router",
    "messages_router",
    "push_router",
    "replies_router",
]
