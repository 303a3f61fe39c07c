# src/marketplace_chat/schemas/push.py
"""Web push subscription schemas, shaped like the browser's PushSubscription JSON."""

from pydantic import BaseModel, Field


class PushKeys(BaseModel):
    p256dh: str | None = None
    auth: str | None = None


class PushSubscriptionCreate(BaseModel):
    endpoint: str = Field(..., min_length=1)
    keys: PushKeys = Field(default_factory=PushKeys)


class PushSubscriptionDelete(BaseModel):
    endpoint: str = Field(..., min_length=1)
