import json

import httpx
import pytest
from sqlalchemy.orm import Session

from rescue.db.enums import AppointmentStatus
from rescue.db.models import Appointment, Intake
from rescue.services.appointment_errors import TwilioApiError, TwilioConnectionError
from rescue.services.appointment_service import (
    CONFIRMED_NOTES,
    INITIATED_NOTES,
    AppointmentService,
    param,
)
from rescue.services.twilio_client import TwilioStudioClient


def _twilio(settings, handler) -> TwilioStudioClient:
    return TwilioStudioClient(settings, transport=httpx.MockTransport(handler))


def _new_intake(db: Session, species="owl") -> Intake:
    intake = Intake(species=species, description="hurt")
    db.add(intake)
    db.commit()
    db.refresh(intake)
    return intake


def _appointment(db: Session, intake: Intake, call_sid=None, status="pending") -> Appointment:
    appointment = Appointment(intake_id=intake.id, call_sid=call_sid, status=status, payload={})
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


@pytest.mark.parametrize("key", ["call_sid", "CallSid", "callSid", "CALL_SID"])
def test_param_lookup_ignores_case_and_underscores(key):
    assert param({key: "FN123"}, "call_sid") == "FN123"


def test_param_blank_value_is_absent():
    assert param({"speech_result": "   "}, "speech_result") is None


@pytest.mark.asyncio
async def test_create_and_call_stores_execution_sid(db: Session, intake: Intake, test_settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["form"] = dict(httpx.QueryParams(request.content.decode()))
        return httpx.Response(201, json={"sid": "FN0001", "status": "active"})

    service = AppointmentService(db, config=test_settings, client=_twilio(test_settings, handler))
    appointment = await service.create_and_call(intake)

    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.notes == INITIATED_NOTES
    assert appointment.call_sid == "FN0001"
    assert appointment.payload == {"sid": "FN0001", "status": "active"}
    assert seen["url"] == "https://studio.twilio.com/v2/Flows/FW123/Executions"
    assert seen["auth"].startswith("Basic ")
    assert seen["form"]["To"] == "+15552223333"
    assert seen["form"]["From"] == "+15550001111"
    parameters = json.loads(seen["form"]["Parameters"])
    assert parameters["intake_id"] == intake.id
    assert parameters["pet_species"] == "owl"
    assert parameters["emergency_description"] == "A owl with wing droops, found on road"


@pytest.mark.asyncio
async def test_create_and_call_replaces_previous_appointment(db: Session, intake: Intake, test_settings):
    old = _appointment(db, intake, call_sid="FN_OLD", status="confirmed")
    old_id = old.id
    test_settings.APPOINTMENT_TEST_MODE = True

    appointment = await AppointmentService(db, config=test_settings).create_and_call(intake)

    assert appointment.id != old_id
    assert db.get(Appointment, old_id) is None
    assert db.query(Appointment).filter(Appointment.intake_id == intake.id).count() == 1


@pytest.mark.asyncio
async def test_test_mode_skips_twilio(db: Session, intake: Intake, test_settings):
    test_settings.APPOINTMENT_TEST_MODE = True

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("Twilio must not be called in test mode")

    service = AppointmentService(db, config=test_settings, client=_twilio(test_settings, handler))
    appointment = await service.create_and_call(intake)

    assert appointment.call_sid.startswith("TEST_")
    assert len(appointment.call_sid) == len("TEST_") + 16
    assert appointment.payload == {"test_mode": True}
    assert appointment.status == AppointmentStatus.PENDING.value


@pytest.mark.asyncio
async def test_timeout_cancels_and_raises_connection_error(db: Session, intake: Intake, test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    service = AppointmentService(db, config=test_settings, client=_twilio(test_settings, handler))

    with pytest.raises(TwilioConnectionError):
        await service.create_and_call(intake)

    appointment = db.query(Appointment).filter(Appointment.intake_id == intake.id).one()
    assert appointment.status == AppointmentStatus.CANCELLED.value
    assert appointment.notes.startswith("Failed to initiate call:")


@pytest.mark.asyncio
async def test_api_error_cancels_and_raises_api_error(db: Session, intake: Intake, test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"code": 20001, "message": "Invalid To"})

    service = AppointmentService(db, config=test_settings, client=_twilio(test_settings, handler))

    with pytest.raises(TwilioApiError) as exc_info:
        await service.create_and_call(intake)

    assert exc_info.value.status_code == 400
    appointment = db.query(Appointment).filter(Appointment.intake_id == intake.id).one()
    assert appointment.status == AppointmentStatus.CANCELLED.value


def test_callback_matches_by_call_sid(db: Session, intake: Intake):
    appointment = _appointment(db, intake, call_sid="FN100")
    appointment.payload = {"sid": "FN100"}
    db.commit()

    result = AppointmentService(db).process_callback(
        {"CallSid": "FN100", "speech_result": "Tomorrow at 9am works."}
    )

    assert result.id == appointment.id
    assert result.status == AppointmentStatus.CONFIRMED.value
    assert result.notes == "Tomorrow at 9am works."
    assert result.payload["sid"] == "FN100"
    assert result.payload["callback"]["speech_result"] == "Tomorrow at 9am works."


def test_callback_unknown_call_sid_returns_none(db: Session, intake: Intake):
    _appointment(db, intake, call_sid="FN100")
    assert AppointmentService(db).process_callback({"call_sid": "FN999"}) is None


def test_callback_by_intake_id_ignores_other_pending_appointments(db: Session, intake: Intake):
    target = _appointment(db, intake)
    other = _appointment(db, _new_intake(db, species="fox"))

    result = AppointmentService(db).process_callback({"intake_id": str(intake.id)})

    assert result.id == target.id
    assert result.notes == CONFIRMED_NOTES
    db.refresh(other)
    assert other.status == AppointmentStatus.PENDING.value


def test_callback_without_keys_uses_latest_pending(db: Session, intake: Intake):
    _appointment(db, intake, status="confirmed")
    latest = _appointment(db, _new_intake(db, species="fox"))

    result = AppointmentService(db).process_callback({"speech_result": ""})

    assert result.id == latest.id
    assert result.status == AppointmentStatus.CONFIRMED.value


def test_status_update_merges_payload_without_changing_status(db: Session, intake: Intake):
    appointment = _appointment(db, intake, call_sid="FN200", status="confirmed")
    appointment.payload = {"callback": {"speech_result": "ok"}}
    db.commit()

    result = AppointmentService(db).process_status_update(
        {"CallSid": "FN200", "CallStatus": "completed", "CallDuration": "42"}
    )

    assert result.status == AppointmentStatus.CONFIRMED.value
    assert result.payload["callback"] == {"speech_result": "ok"}
    assert result.payload["status_update"]["CallStatus"] == "completed"


def test_status_update_for_unknown_call_returns_none(db: Session, intake: Intake):
    _appointment(db, intake, call_sid="FN200")
    assert AppointmentService(db).process_status_update({"CallSid": "FN404"}) is None


@pytest.mark.asyncio
async def test_refresh_execution_status_merges_execution(db: Session, intake: Intake, test_settings):
    appointment = _appointment(db, intake, call_sid="FN300")

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/Executions/FN300")
        return httpx.Response(200, json={"sid": "FN300", "status": "ended"})

    service = AppointmentService(db, config=test_settings, client=_twilio(test_settings, handler))
    result = await service.refresh_execution_status(appointment)

    assert result.payload["execution"]["status"] == "ended"


@pytest.mark.asyncio
async def test_refresh_execution_status_returns_none_on_failure(db: Session, intake: Intake, test_settings):
    appointment = _appointment(db, intake, call_sid="FN300")

    service = AppointmentService(
        db,
        config=test_settings,
        client=_twilio(test_settings, lambda r: httpx.Response(404, json={})),
    )

    assert await service.refresh_execution_status(appointment) is None
