"""Twilio webhook handlers (appointment callback and voice status)."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Iterable, Mapping
from urllib.parse import parse_qsl

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from rescue.core.config import Settings, settings
from rescue.core.structured_logging import build_log_context
from rescue.services.appointment_errors import WebhookValidationError
from rescue.services.appointment_service import AppointmentService

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"
MAX_PAYLOAD_BYTES = 64 * 1024

ParamPairs = Iterable[tuple[str, str]]


# =============================================================================
# Signature verification
# =============================================================================

def _pairs(params: Mapping[str, str] | ParamPairs) -> list[tuple[str, str]]:
    items = params.items() if isinstance(params, Mapping) else params
    return [(str(k), str(v)) for k, v in items]


def compute_signature(url: str, params: Mapping[str, str] | ParamPairs, secret: str) -> str:
    """
    Twilio request signature.

    base64(HMAC-SHA1(auth token, url + key1 + value1 + key2 + value2 ...))
    with the POST parameters sorted by key.
    """
    data = url + "".join(f"{key}{value}" for key, value in sorted(_pairs(params)))
    digest = hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(
    url: str,
    params: Mapping[str, str] | ParamPairs,
    signature: str | None,
    secret: str | None,
) -> None:
    """
    Raises:
        WebhookValidationError: secret or signature missing, or mismatch.
    """
    if not secret:
        logger.error("TWILIO_AUTH_TOKEN not configured")
        raise WebhookValidationError("Webhook secret not configured")
    if not signature:
        raise WebhookValidationError("Missing signature")

    expected = compute_signature(url, params, secret).encode("utf-8")
    provided = signature.encode("utf-8")
    if len(expected) != len(provided):
        raise WebhookValidationError("Invalid signature")
    if not hmac.compare_digest(expected, provided):
        raise WebhookValidationError("Invalid signature")


def signed_url(request: Request, config: Settings) -> str:
    """URL Twilio signed: PUBLIC_BASE_URL + path when behind a proxy."""
    if not config.PUBLIC_BASE_URL:
        return str(request.url)
    url = config.PUBLIC_BASE_URL.rstrip("/") + request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return url


def verify_request(request: Request, form: ParamPairs, config: Settings) -> None:
    """Check the request signature unless verification is switched off."""
    if not config.twilio_verification_enabled:
        return
    verify_signature(
        signed_url(request, config),
        form,
        request.headers.get(SIGNATURE_HEADER),
        config.TWILIO_AUTH_TOKEN,
    )


# =============================================================================
# Request parsing
# =============================================================================

async def _read_form(request: Request) -> list[tuple[str, str]]:
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > MAX_PAYLOAD_BYTES:
                raise HTTPException(413, "Payload too large")
        except ValueError:
            pass

    body = await request.body()
    if len(body) > MAX_PAYLOAD_BYTES:
        raise HTTPException(413, "Payload too large")
    try:
        return parse_qsl(body.decode("utf-8"), keep_blank_values=True)
    except UnicodeDecodeError:
        raise HTTPException(400, "Invalid form body")


async def _authenticated_params(
    request: Request, config: Settings, endpoint: str
) -> dict[str, str]:
    form = await _read_form(request)
    try:
        verify_request(request, form, config)
    except WebhookValidationError as exc:
        logger.warning(
            "Twilio webhook rejected: %s",
            exc.reason,
            extra=build_log_context(route=endpoint, method="POST"),
        )
        raise HTTPException(403, "Invalid signature")

    # Query string values (Studio widgets may use them) lose to the form body
    return {**dict(request.query_params), **dict(form)}


# =============================================================================
# Handlers
# =============================================================================

class TwilioAppointmentCallbackHandler:
    async def handle(self, request: Request, db: Session, **kwargs):
        """
        Confirmation from the Studio flow after the AI agent spoke to the vet.

        200 with the appointment id, 404 when nothing matches, 500 on an
        unexpected error, 403 when the signature check fails.
        """
        config: Settings = kwargs.get("config") or settings
        params = await _authenticated_params(request, config, "appointment_callback")

        try:
            appointment = AppointmentService(db, config=config).process_callback(params)
        except Exception:
            db.rollback()
            logger.exception(
                "Twilio webhook error",
                extra=build_log_context(route="appointment_callback", method="POST"),
            )
            return JSONResponse(
                {"success": False, "error": "Internal server error"}, status_code=500
            )

        if not appointment:
            return JSONResponse(
                {"success": False, "error": "Appointment not found"}, status_code=404
            )
        return {"success": True, "appointment_id": appointment.id}


class TwilioVoiceStatusHandler:
    async def handle(self, request: Request, db: Session, **kwargs):
        """
        Call progress updates (ringing, in-progress, completed, ...).

        Always answers 200 once authenticated so Twilio does not retry.
        """
        config: Settings = kwargs.get("config") or settings
        params = await _authenticated_params(request, config, "voice_status")

        try:
            appointment = AppointmentService(db, config=config).process_status_update(params)
        except Exception:
            db.rollback()
            logger.exception(
                "Twilio webhook error",
                extra=build_log_context(route="voice_status", method="POST"),
            )
            return {"success": False}

        if not appointment:
            return {"success": False}
        return {"success": True, "appointment_id": appointment.id}
