import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from rescue.core.config import settings
from rescue.db.enums import AppointmentStatus
from rescue.db.models import Appointment, Intake
from rescue.services.appointment_service import AppointmentService
from rescue.services.webhooks.twilio import compute_signature

CALLBACK_PATH = "/api/v1/twilio/appointment_callback"
STATUS_PATH = "/api/v1/twilio/voice_status"
SECRET = "webhook-secret"


@pytest.fixture(autouse=True)
def twilio_secret(monkeypatch):
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", SECRET)
    monkeypatch.setattr(settings, "SKIP_TWILIO_VERIFICATION", False)
    monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "")


@pytest.fixture
def appointment(db: Session, intake: Intake) -> Appointment:
    record = Appointment(
        intake_id=intake.id,
        status=AppointmentStatus.PENDING.value,
        call_sid="FN777",
        payload={"sid": "FN777"},
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def _signed_headers(path: str, form: dict, base: str = "http://test") -> dict:
    return {"X-Twilio-Signature": compute_signature(base + path, form, SECRET)}


@pytest.mark.asyncio
async def test_callback_confirms_appointment(client: AsyncClient, db: Session, appointment: Appointment):
    form = {"CallSid": "FN777", "speech_result": "Bring it in at 4pm."}

    res = await client.post(CALLBACK_PATH, data=form, headers=_signed_headers(CALLBACK_PATH, form))

    assert res.status_code == 200
    assert res.json() == {"success": True, "appointment_id": appointment.id}
    db.refresh(appointment)
    assert appointment.status == AppointmentStatus.CONFIRMED.value
    assert appointment.notes == "Bring it in at 4pm."
    assert appointment.payload["sid"] == "FN777"
    assert appointment.payload["callback"]["CallSid"] == "FN777"


@pytest.mark.asyncio
async def test_callback_with_bad_signature_is_rejected(
    client: AsyncClient, db: Session, appointment: Appointment
):
    form = {"CallSid": "FN777"}
    headers = _signed_headers(CALLBACK_PATH, {"CallSid": "FN000"})

    res = await client.post(CALLBACK_PATH, data=form, headers=headers)

    assert res.status_code == 403
    db.refresh(appointment)
    assert appointment.status == AppointmentStatus.PENDING.value


@pytest.mark.asyncio
async def test_callback_without_signature_is_rejected(client: AsyncClient, appointment: Appointment):
    res = await client.post(CALLBACK_PATH, data={"CallSid": "FN777"})
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_callback_without_secret_is_rejected(
    client: AsyncClient, appointment: Appointment, monkeypatch
):
    form = {"CallSid": "FN777"}
    headers = _signed_headers(CALLBACK_PATH, form)
    monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "")

    res = await client.post(CALLBACK_PATH, data=form, headers=headers)

    assert res.status_code == 403


@pytest.mark.asyncio
async def test_callback_signature_uses_public_base_url(
    client: AsyncClient, appointment: Appointment, monkeypatch
):
    monkeypatch.setattr(settings, "PUBLIC_BASE_URL", "https://rescue.example.org/")
    form = {"CallSid": "FN777"}

    wrong = await client.post(CALLBACK_PATH, data=form, headers=_signed_headers(CALLBACK_PATH, form))
    right = await client.post(
        CALLBACK_PATH,
        data=form,
        headers=_signed_headers(CALLBACK_PATH, form, base="https://rescue.example.org"),
    )

    assert wrong.status_code == 403
    assert right.status_code == 200


@pytest.mark.asyncio
async def test_callback_unknown_appointment_is_404(client: AsyncClient, appointment: Appointment):
    form = {"CallSid": "FN_UNKNOWN"}

    res = await client.post(CALLBACK_PATH, data=form, headers=_signed_headers(CALLBACK_PATH, form))

    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Appointment not found"}


@pytest.mark.asyncio
async def test_callback_skips_verification_when_disabled(
    client: AsyncClient, db: Session, appointment: Appointment, monkeypatch
):
    monkeypatch.setattr(settings, "SKIP_TWILIO_VERIFICATION", True)

    res = await client.post(CALLBACK_PATH, data={"intake_id": str(appointment.intake_id)})

    assert res.status_code == 200
    db.refresh(appointment)
    assert appointment.status == AppointmentStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_callback_oversized_body_is_rejected(client: AsyncClient, appointment: Appointment):
    form = {"CallSid": "FN777", "speech_result": "x" * (65 * 1024)}

    res = await client.post(CALLBACK_PATH, data=form, headers=_signed_headers(CALLBACK_PATH, form))

    assert res.status_code == 413


@pytest.mark.asyncio
async def test_voice_status_records_update(client: AsyncClient, db: Session, appointment: Appointment):
    form = {"CallSid": "FN777", "CallStatus": "in-progress"}

    res = await client.post(STATUS_PATH, data=form, headers=_signed_headers(STATUS_PATH, form))

    assert res.status_code == 200
    assert res.json()["success"] is True
    db.refresh(appointment)
    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.payload["status_update"]["CallStatus"] == "in-progress"


@pytest.mark.asyncio
async def test_voice_status_unknown_call_still_200(client: AsyncClient, appointment: Appointment):
    form = {"CallSid": "FN_UNKNOWN", "CallStatus": "completed"}

    res = await client.post(STATUS_PATH, data=form, headers=_signed_headers(STATUS_PATH, form))

    assert res.status_code == 200
    assert res.json() == {"success": False}


@pytest.mark.asyncio
async def test_voice_status_bad_signature_is_rejected(client: AsyncClient, appointment: Appointment):
    res = await client.post(
        STATUS_PATH, data={"CallSid": "FN777"}, headers={"X-Twilio-Signature": "bogus"}
    )
    assert res.status_code == 403


def _failing_after_write(db: Session, appointment: Appointment):
    """Stand-in that leaves a flushed half-update behind, then blows up."""

    def fail(self, params):
        appointment.status = AppointmentStatus.CONFIRMED.value
        appointment.notes = "half-written"
        db.flush()
        raise RuntimeError("database went away")

    return fail


@pytest.mark.asyncio
async def test_callback_internal_error_is_500_and_rolled_back(
    client: AsyncClient, db: Session, appointment: Appointment, monkeypatch
):
    monkeypatch.setattr(
        AppointmentService, "process_callback", _failing_after_write(db, appointment)
    )
    form = {"CallSid": "FN777"}

    res = await client.post(CALLBACK_PATH, data=form, headers=_signed_headers(CALLBACK_PATH, form))

    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "Internal server error"}
    db.refresh(appointment)
    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.notes is None


@pytest.mark.asyncio
async def test_voice_status_internal_error_still_200_and_rolled_back(
    client: AsyncClient, db: Session, appointment: Appointment, monkeypatch
):
    monkeypatch.setattr(
        AppointmentService, "process_status_update", _failing_after_write(db, appointment)
    )
    form = {"CallSid": "FN777", "CallStatus": "completed"}

    res = await client.post(STATUS_PATH, data=form, headers=_signed_headers(STATUS_PATH, form))

    assert res.status_code == 200
    assert res.json() == {"success": False}
    db.refresh(appointment)
    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.notes is None
