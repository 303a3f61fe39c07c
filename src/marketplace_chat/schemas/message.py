# src/marketplace_chat/schemas/message.py
"""Legacy thread Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ContactSellerRequest(BaseModel):
    """Schema for a buyer's first contact with a seller."""

    seller_id: str | None = Field(None, alias="sellerId", description="Seller account id")
    body: str | None = Field(None, description="Message text")

    model_config = ConfigDict(populate_by_name=True)


class StartBySellerRequest(BaseModel):
    """Schema for a seller opening a thread with a buyer email."""

    buyer_email: str | None = Field(None, alias="buyerEmail", description="Buyer email address")
    body: str | None = Field(None, description="Message text")

    model_config = ConfigDict(populate_by_name=True)


class ReplyCreate(BaseModel):
    body: str | None = None


class StatusUpdate(BaseModel):
    """Schema for changing a message's mailbox triage status."""

    status: str = Field(..., description="One of new, read, replied, archived, spam, blocked")


class MessageResponse(BaseModel):
    """Seed message as returned to the seller."""

    id: str
    seller_id: str
    sender_name: str | None
    sender_email: str
    subject: str | None
    body: str
    status: str
    delivery_status: str
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ReplyResponse(BaseModel):
    id: str
    message_id: str
    sender_id: str
    body: str
    delivery_status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeliveryResponse(BaseModel):
    ok: bool = True
    delivery_status: str
