# src/marketplace_chat/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .conversation import ConversationMessageCreate, StartConversationRequest, TypingRequest
from .message import (
    ContactSellerRequest,
    DeliveryResponse,
    MessageResponse,
    ReplyCreate,
    ReplyResponse,
    StartBySellerRequest,
    StatusUpdate,
)
from .push import PushSubscriptionCreate, PushSubscriptionDelete

__all__ = [
    "ConversationMessageCreate", "StartConversationRequest", "TypingRequest",
    "ContactSellerRequest", "DeliveryResponse", "MessageResponse",
    "ReplyCreate", "ReplyResponse", "StartBySellerRequest", "StatusUpdate",
    "PushSubscriptionCreate", "PushSubscriptionDelete",
]
