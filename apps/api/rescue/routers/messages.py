"""Messages router - polling target for pending assistant turns."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from rescue.core.deps import get_db
from rescue.schemas.intake import ChatMessageRead
from rescue.services import intake_service

router = APIRouter()


@router.get("/{message_id}", response_model=ChatMessageRead)
def get_message(message_id: int, db: Session = Depends(get_db)):
    message = intake_service.get_message(db, message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return message
