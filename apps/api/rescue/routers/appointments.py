"""Appointments router - vet call for an intake."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from rescue.core.deps import get_db
from rescue.core.structured_logging import build_log_context
from rescue.db.models import Appointment
from rescue.schemas.appointment import AppointmentCreated, AppointmentRead
from rescue.services import intake_service
from rescue.services.appointment_errors import TwilioApiError, TwilioConnectionError
from rescue.services.appointment_service import AppointmentService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/intakes/{intake_id}/appointment",
    response_model=AppointmentCreated,
    status_code=201,
)
async def create_appointment(intake_id: int, db: Session = Depends(get_db)):
    """
    Create an appointment and start the AI agent call to the vet.

    503 when Twilio is unreachable, 422 when it rejects the call.
    """
    intake = intake_service.get_intake(db, intake_id)
    if not intake:
        raise HTTPException(status_code=404, detail="Intake not found")

    try:
        appointment = await AppointmentService(db).create_and_call(intake)
    except TwilioConnectionError:
        logger.error("Twilio connection failed", extra=build_log_context(intake_id=intake_id))
        return JSONResponse(
            {"success": False, "error": "Connection timeout - please try again"},
            status_code=503,
        )
    except TwilioApiError:
        logger.error("Twilio API error", extra=build_log_context(intake_id=intake_id))
        return JSONResponse(
            {"success": False, "error": "Unable to initiate call - please contact support"},
            status_code=422,
        )

    return AppointmentCreated(appointment_id=appointment.id, status=appointment.status)


@router.get("/appointments/{appointment_id}", response_model=AppointmentRead)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment
