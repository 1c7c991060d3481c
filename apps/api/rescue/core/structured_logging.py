"""Structured logging helpers (PII-safe)."""

from typing import Any
from urllib.parse import urlsplit


def build_log_context(
    *,
    intake_id: int | None = None,
    message_id: int | None = None,
    appointment_id: int | None = None,
    job_id: int | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict without user-supplied free text."""
    context: dict[str, Any] = {}
    if intake_id is not None:
        context["intake_id"] = intake_id
    if message_id is not None:
        context["message_id"] = message_id
    if appointment_id is not None:
        context["appointment_id"] = appointment_id
    if job_id is not None:
        context["job_id"] = job_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context


def safe_url(url: str | None) -> str:
    """Drop query string and fragment (may carry keys or signed tokens)."""
    if not url:
        return ""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"
