"""Pydantic schemas for appointments."""

from pydantic import BaseModel


class AppointmentRead(BaseModel):
    id: int
    intake_id: int
    status: str
    notes: str | None = None
    confirmed: bool

    model_config = {"from_attributes": True}


class AppointmentCreated(BaseModel):
    success: bool = True
    appointment_id: int
    status: str
