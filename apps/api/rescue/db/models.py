"""SQLAlchemy ORM models for intakes, chat messages, appointments and jobs."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, ForeignKey, Index, Integer, Numeric, String, Text, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rescue.db.base import Base
from rescue.db.enums import (
    DEFAULT_APPOINTMENT_STATUS, DEFAULT_INTAKE_STATUS, DEFAULT_JOB_STATUS,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Intake & Conversation
# =============================================================================

class Intake(Base):
    """
    A single reported animal emergency.

    raw_payload keeps the last AI envelope (or the structured error) for
    audit; it is never shown to the user directly.
    """
    __tablename__ = "intakes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    species: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    photo_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    source: Mapped[str] = mapped_column(
        String(20), default="web", server_default="web", nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_INTAKE_STATUS.value,
        server_default=DEFAULT_INTAKE_STATUS.value,
        nullable=False,
    )
    raw_payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    chat_messages: Mapped[list["ChatMessage"]] = relationship(
        back_populates="intake",
        cascade="all, delete-orphan",
        order_by=lambda: (ChatMessage.created_at, ChatMessage.id),
    )
    appointment: Mapped[Optional["Appointment"]] = relationship(
        back_populates="intake",
        cascade="all, delete-orphan",
        uselist=False,
    )


class ChatMessage(Base):
    """
    One conversation turn.

    Assistant placeholders are created with pending=True and later updated
    in place so pollers keep a stable id.
    """
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("idx_chat_messages_intake", "intake_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    intake_id: Mapped[int] = mapped_column(
        ForeignKey("intakes.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    photo_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    pending: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="0", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False
    )

    intake: Mapped["Intake"] = relationship(back_populates="chat_messages")


# =============================================================================
# Appointments
# =============================================================================

class Appointment(Base):
    """
    Outbound vet call for an intake (at most one per intake).

    call_sid is the Twilio Studio execution sid and the primary key used to
    correlate webhooks. payload accumulates every webhook body under its own
    sub-key.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_status", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    intake_id: Mapped[int] = mapped_column(
        ForeignKey("intakes.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_APPOINTMENT_STATUS.value,
        server_default=DEFAULT_APPOINTMENT_STATUS.value,
        nullable=False,
    )
    call_sid: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    scheduled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False
    )

    intake: Mapped["Intake"] = relationship(back_populates="appointment")

    @property
    def confirmed(self) -> bool:
        return self.status == "confirmed"


# =============================================================================
# Background Jobs
# =============================================================================

class Job(Base):
    """
    Background job for async processing.

    Used for: intake AI turns.
    Worker polls for pending jobs and processes them.
    """
    __tablename__ = "jobs"
    __table_args__ = (
        Index("idx_jobs_pending", "status", "run_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    run_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_JOB_STATUS.value,
        server_default=DEFAULT_JOB_STATUS.value,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, default=3, server_default="3", nullable=False
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_kind: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Idempotency key for deduplication
    idempotency_key: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
