"""AI-related job handlers."""

from __future__ import annotations

import logging

from rescue.core.structured_logging import build_log_context

logger = logging.getLogger(__name__)


async def process_intake_ai(db, job) -> None:
    """Run one assistant turn for the intake named in the job payload."""
    from rescue.services import intake_ai_service

    payload = job.payload or {}
    intake_id = payload.get("intake_id")
    pending_message_id = payload.get("pending_message_id")

    if not intake_id:
        raise ValueError("Missing intake_id in intake AI job payload")

    logger.info(
        "Processing intake AI job (attempt %d)",
        job.attempts,
        extra=build_log_context(
            intake_id=intake_id, message_id=pending_message_id, job_id=job.id
        ),
    )
    await intake_ai_service.process_intake(db, int(intake_id), pending_message_id)
