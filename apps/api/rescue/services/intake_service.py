"""Intake service - cases and chat turns submitted by the public."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from rescue.core.structured_logging import build_log_context
from rescue.db.enums import IntakeStatus, MessageRole
from rescue.db.models import ChatMessage, Intake
from rescue.services import job_service

logger = logging.getLogger(__name__)

# Placeholder texts shown while the assistant works on a turn
INITIAL_PLACEHOLDER = "Analyzing"
FOLLOW_UP_PLACEHOLDER = "Thinking"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def create_intake(
    db: Session,
    description: str,
    species: str | None = None,
    photo_url: str | None = None,
    source: str = "web",
) -> tuple[Intake, ChatMessage]:
    """
    Create an intake with its first user message and queue the first AI turn.

    Returns the intake and the pending assistant placeholder to poll.
    """
    photo_url = _clean(photo_url)
    intake = Intake(
        species=_clean(species),
        description=description.strip(),
        photo_url=photo_url,
        source=source,
        status=IntakeStatus.PENDING.value,
    )
    db.add(intake)
    db.flush()

    db.add(
        ChatMessage(
            intake_id=intake.id,
            role=MessageRole.USER.value,
            content=intake.description,
            photo_url=photo_url,
        )
    )
    db.flush()
    placeholder = ChatMessage(
        intake_id=intake.id,
        role=MessageRole.ASSISTANT.value,
        content=INITIAL_PLACEHOLDER,
        pending=True,
    )
    db.add(placeholder)
    db.flush()

    # Placeholder and job commit together; a pending message always has a job
    job_service.enqueue_intake_ai(db, intake.id, placeholder.id, commit=False)
    db.commit()
    db.refresh(intake)
    db.refresh(placeholder)
    logger.info(
        "Intake created",
        extra=build_log_context(intake_id=intake.id, message_id=placeholder.id),
    )
    return intake, placeholder


def add_user_message(db: Session, intake: Intake, content: str) -> ChatMessage:
    """Append a follow-up user turn and queue the AI answer. Returns the placeholder."""
    db.add(
        ChatMessage(
            intake_id=intake.id,
            role=MessageRole.USER.value,
            content=content.strip(),
        )
    )
    db.flush()
    placeholder = ChatMessage(
        intake_id=intake.id,
        role=MessageRole.ASSISTANT.value,
        content=FOLLOW_UP_PLACEHOLDER,
        pending=True,
    )
    db.add(placeholder)
    intake.status = IntakeStatus.PENDING.value
    db.flush()

    job_service.enqueue_intake_ai(db, intake.id, placeholder.id, commit=False)
    db.commit()
    db.refresh(placeholder)
    return placeholder


def get_intake(db: Session, intake_id: int) -> Intake | None:
    return db.get(Intake, intake_id)


def get_message(db: Session, message_id: int) -> ChatMessage | None:
    return db.get(ChatMessage, message_id)
