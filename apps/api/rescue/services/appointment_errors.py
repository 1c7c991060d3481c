"""Errors raised by the appointment call flow and its webhooks."""

from __future__ import annotations


class AppointmentError(Exception):
    """Base class for appointment failures."""


class TwilioConnectionError(AppointmentError):
    """Network failure or timeout reaching Twilio. Safe to retry by the caller."""

    def __init__(self, message: str, *, timeout: bool = False):
        self.timeout = timeout
        super().__init__(message)


class TwilioApiError(AppointmentError):
    """Twilio rejected the request or returned an unusable response."""

    def __init__(self, message: str, *, status_code: int | None = None, body: dict | None = None):
        self.status_code = status_code
        self.body = body or {}
        super().__init__(message)


class WebhookValidationError(AppointmentError):
    """Inbound webhook failed authentication. Rejected before business logic."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
