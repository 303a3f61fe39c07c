# src/marketplace_chat/schemas/conversation.py
"""Symmetric conversation Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field


class StartConversationRequest(BaseModel):
    participant_id: str | None = Field(None, alias="participantId")

    model_config = ConfigDict(populate_by_name=True)


class ConversationMessageCreate(BaseModel):
    body: str | None = None


class TypingRequest(BaseModel):
    typing: bool = True
