"""Pydantic schemas for intakes and chat messages."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

MAX_DESCRIPTION_LENGTH = 2000


class IntakeCreate(BaseModel):
    """Request to report a new case."""

    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    species: str | None = Field(None, max_length=100)
    photo_url: str | None = Field(None, max_length=1000)

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description must not be blank")
        return v


class MessageCreate(BaseModel):
    """Follow-up message from the reporter."""

    content: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be blank")
        return v


class ChatMessageRead(BaseModel):
    id: int
    intake_id: int
    role: str
    content: str
    photo_url: str | None = None
    pending: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class IntakeRead(BaseModel):
    """Intake with its conversation."""

    id: int
    species: str | None = None
    description: str
    photo_url: str | None = None
    source: str
    status: str
    created_at: datetime
    chat_messages: list[ChatMessageRead] = []

    model_config = {"from_attributes": True}


class IntakeCreated(BaseModel):
    """Created intake plus the placeholder message to poll."""

    intake: IntakeRead
    pending_message_id: int
