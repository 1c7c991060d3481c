"""Twilio webhooks router - Studio flow callbacks."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from rescue.core.deps import get_db
from rescue.services.webhooks.registry import get_handler

router = APIRouter()


@router.post("/appointment_callback")
async def appointment_callback(request: Request, db: Session = Depends(get_db)):
    """AI agent finished the call with the vet."""
    return await get_handler("twilio_appointment_callback").handle(request, db)


@router.post("/voice_status")
async def voice_status(request: Request, db: Session = Depends(get_db)):
    """Call progress updates. Always 200 once authenticated."""
    return await get_handler("twilio_voice_status").handle(request, db)
