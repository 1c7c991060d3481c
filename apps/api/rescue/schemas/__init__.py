"""Pydantic schemas for API request/response models."""

from rescue.schemas.appointment import AppointmentCreated, AppointmentRead
from rescue.schemas.intake import (
    ChatMessageRead,
    IntakeCreate,
    IntakeCreated,
    IntakeRead,
    MessageCreate,
)

__all__ = [
    "AppointmentCreated",
    "AppointmentRead",
    "ChatMessageRead",
    "IntakeCreate",
    "IntakeCreated",
    "IntakeRead",
    "MessageCreate",
]
