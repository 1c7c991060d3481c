"""Appointment service - outbound vet call and webhook reconciliation.

An appointment is created per intake (replacing any earlier one), the Twilio
Studio flow calls the vet, and two webhooks report back: the confirmation
callback from the AI agent and the informational voice status updates.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Mapping

from sqlalchemy.orm import Session

from rescue.core.config import Settings, settings as default_settings
from rescue.core.structured_logging import build_log_context
from rescue.db.enums import AppointmentStatus
from rescue.db.models import Appointment, Intake
from rescue.services.appointment_errors import (
    AppointmentError,
    TwilioApiError,
    TwilioConnectionError,
)
from rescue.services.emergency_description import build_emergency_description
from rescue.services.twilio_client import TwilioStudioClient

logger = logging.getLogger(__name__)

INITIATED_NOTES = "AI agent call initiated"
CONFIRMED_NOTES = "Appointment confirmed via AI agent"
TEST_CALL_SID_PREFIX = "TEST_"


def _normalize_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def param(params: Mapping[str, Any], name: str) -> str | None:
    """
    Look up *name* ignoring case and underscores.

    ``call_sid``, ``CallSid`` and ``callSid`` all resolve to the same field.
    Blank values count as absent.
    """
    wanted = _normalize_key(name)
    for key, value in params.items():
        if _normalize_key(str(key)) == wanted:
            if value is None:
                return None
            text = str(value).strip()
            return text or None
    return None


class AppointmentService:
    def __init__(
        self,
        db: Session,
        *,
        config: Settings | None = None,
        client: TwilioStudioClient | None = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.client = client or TwilioStudioClient(self.config)

    # ── Outbound call ────────────────────────────────────────────────

    async def create_and_call(self, intake: Intake) -> Appointment:
        """
        Replace the intake's appointment and ask the vet via an AI agent call.

        Raises:
            TwilioConnectionError: Twilio unreachable; appointment cancelled.
            TwilioApiError: Twilio rejected the call; appointment cancelled.
        """
        log_extra = build_log_context(intake_id=intake.id)
        description = build_emergency_description(intake)

        if intake.appointment is not None:
            logger.info("Replacing existing appointment", extra=log_extra)
            self.db.delete(intake.appointment)
            self.db.flush()
            self.db.expire(intake, ["appointment"])

        appointment = Appointment(
            intake_id=intake.id,
            status=AppointmentStatus.PENDING.value,
            notes=INITIATED_NOTES,
            payload={},
        )
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)

        if self.config.APPOINTMENT_TEST_MODE:
            logger.info("TEST MODE: skipping Twilio call", extra=log_extra)
            appointment.call_sid = f"{TEST_CALL_SID_PREFIX}{secrets.token_hex(8)}"
            appointment.payload = {"test_mode": True}
            self.db.commit()
            self.db.refresh(appointment)
            return appointment

        try:
            response = await self.client.initiate_execution(
                to=self.config.VET_PHONE_NUMBER,
                from_=self.config.TWILIO_PHONE_NUMBER,
                parameters={
                    "intake_id": intake.id,
                    "emergency_description": description,
                    "pet_species": intake.species,
                },
            )
        except TwilioConnectionError as exc:
            self._cancel(appointment, exc)
            raise
        except TwilioApiError as exc:
            self._cancel(appointment, exc)
            raise
        except Exception as exc:
            self._cancel(appointment, exc)
            raise TwilioApiError(f"Unexpected Twilio failure: {type(exc).__name__}") from exc

        appointment.call_sid = response["sid"]
        appointment.payload = response
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(
            "Twilio call initiated (sid=%s)",
            appointment.call_sid,
            extra=build_log_context(intake_id=intake.id, appointment_id=appointment.id),
        )
        return appointment

    def _cancel(self, appointment: Appointment, exc: Exception) -> None:
        logger.error(
            "Failed to initiate Twilio call: %s",
            type(exc).__name__,
            extra=build_log_context(
                intake_id=appointment.intake_id, appointment_id=appointment.id
            ),
        )
        self.db.rollback()
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.notes = f"Failed to initiate call: {exc}"
        self.db.commit()

    async def refresh_execution_status(self, appointment: Appointment) -> Appointment | None:
        """Merge the current Studio execution state into the payload under ``execution``."""
        if not appointment.call_sid or appointment.call_sid.startswith(TEST_CALL_SID_PREFIX):
            return None

        try:
            execution = await self.client.get_execution_status(appointment.call_sid)
        except AppointmentError as exc:
            logger.warning(
                "Execution status lookup failed: %s",
                type(exc).__name__,
                extra=build_log_context(appointment_id=appointment.id),
            )
            return None
        if execution is None:
            return None

        appointment.payload = {**(appointment.payload or {}), "execution": execution}
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    # ── Webhook reconciliation ───────────────────────────────────────

    def find_appointment(
        self, call_sid: str | None, intake_id: str | int | None
    ) -> Appointment | None:
        """
        Match a webhook to its appointment.

        Priority: call_sid, then the intake's appointment, then the most
        recently created pending appointment.
        """
        if call_sid:
            return self.db.query(Appointment).filter(Appointment.call_sid == call_sid).first()

        if intake_id is not None:
            try:
                intake = self.db.get(Intake, int(intake_id))
            except (TypeError, ValueError):
                logger.warning("Webhook carried a malformed intake_id")
                return None
            return intake.appointment if intake else None

        # Not scoped to an intake; only safe while a single call is in flight
        logger.warning("No call_sid or intake_id provided, using most recent pending appointment")
        return (
            self.db.query(Appointment)
            .filter(Appointment.status == AppointmentStatus.PENDING.value)
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .first()
        )

    def process_callback(self, params: Mapping[str, Any]) -> Appointment | None:
        """Confirmation from the AI agent: confirm and record what the vet said."""
        call_sid = param(params, "call_sid")
        intake_id = param(params, "intake_id")

        appointment = self.find_appointment(call_sid, intake_id)
        if not appointment:
            logger.error(
                "Appointment not found for callback (call_sid present: %s, intake_id: %s)",
                bool(call_sid),
                intake_id,
            )
            return None

        appointment.status = AppointmentStatus.CONFIRMED.value
        appointment.notes = param(params, "speech_result") or CONFIRMED_NOTES
        appointment.payload = {**(appointment.payload or {}), "callback": dict(params)}
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(
            "Appointment confirmed",
            extra=build_log_context(
                intake_id=appointment.intake_id, appointment_id=appointment.id
            ),
        )
        return appointment

    def process_status_update(self, params: Mapping[str, Any]) -> Appointment | None:
        """Call progress from Twilio. Recorded only; the status never changes here."""
        appointment = self.find_appointment(
            param(params, "call_sid"), param(params, "intake_id")
        )
        if not appointment:
            return None

        appointment.payload = {**(appointment.payload or {}), "status_update": dict(params)}
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(
            "Appointment call status: %s",
            param(params, "call_status"),
            extra=build_log_context(appointment_id=appointment.id),
        )
        return appointment
