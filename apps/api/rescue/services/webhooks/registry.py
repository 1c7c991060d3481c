"""Webhook handler registry."""

from __future__ import annotations

from rescue.services.webhooks.base import WebhookHandler
from rescue.services.webhooks.twilio import (
    TwilioAppointmentCallbackHandler,
    TwilioVoiceStatusHandler,
)

_HANDLERS: dict[str, WebhookHandler] = {
    "twilio_appointment_callback": TwilioAppointmentCallbackHandler(),
    "twilio_voice_status": TwilioVoiceStatusHandler(),
}


def get_handler(name: str):
    handler = _HANDLERS.get(name)
    if not handler:
        raise KeyError(f"Unknown webhook handler: {name}")
    return handler
