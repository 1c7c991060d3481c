"""Intakes router - report a case and continue the conversation."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from rescue.core.deps import get_db
from rescue.schemas.intake import (
    ChatMessageRead,
    IntakeCreate,
    IntakeCreated,
    IntakeRead,
    MessageCreate,
)
from rescue.services import intake_service

router = APIRouter()


@router.post("", response_model=IntakeCreated, status_code=201)
def create_intake(data: IntakeCreate, db: Session = Depends(get_db)):
    """
    Report a new case.

    The first AI turn runs in the background; poll
    ``GET /messages/{pending_message_id}`` until ``pending`` is false.
    """
    intake, placeholder = intake_service.create_intake(
        db,
        description=data.description,
        species=data.species,
        photo_url=data.photo_url,
    )
    return IntakeCreated(
        intake=IntakeRead.model_validate(intake),
        pending_message_id=placeholder.id,
    )


@router.get("/{intake_id}", response_model=IntakeRead)
def get_intake(intake_id: int, db: Session = Depends(get_db)):
    intake = intake_service.get_intake(db, intake_id)
    if not intake:
        raise HTTPException(status_code=404, detail="Intake not found")
    return intake


@router.post("/{intake_id}/messages", response_model=ChatMessageRead, status_code=201)
def create_message(intake_id: int, data: MessageCreate, db: Session = Depends(get_db)):
    """Add a follow-up message. Returns the assistant placeholder to poll."""
    intake = intake_service.get_intake(db, intake_id)
    if not intake:
        raise HTTPException(status_code=404, detail="Intake not found")
    return intake_service.add_user_message(db, intake, data.content)
