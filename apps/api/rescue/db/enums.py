"""Enum definitions for application constants."""

from enum import Enum


class IntakeStatus(str, Enum):
    """
    Lifecycle of a reported case.

    pending → responded (AI answered the latest turn)
            ↘ error     (latest turn failed, see raw_payload)
            ↘ timeout
    """
    PENDING = "pending"
    RESPONDED = "responded"
    ERROR = "error"
    TIMEOUT = "timeout"


class MessageRole(str, Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: pending → confirmed
              ↘ cancelled (outbound call failed)
    """
    PENDING = "pending"      # Call placed, awaiting callback
    CONFIRMED = "confirmed"  # Vet confirmed via AI agent
    CANCELLED = "cancelled"  # Call could not be initiated


class JobType(str, Enum):
    """Types of background jobs."""
    INTAKE_AI = "intake_ai"


class JobStatus(str, Enum):
    """Status of background jobs."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    DISCARDED = "discarded"


class ErrorKind(str, Enum):
    """Failure kinds surfaced by the intake AI pipeline."""
    API_CONNECTION = "ApiConnectionError"
    API_SERVER = "ApiServerError"
    TEMPORARY = "TemporaryError"
    PARSE = "ParseError"
    VALIDATION = "ValidationError"
    CONFIGURATION = "ConfigurationError"
    ASSISTANT_DISABLED = "AssistantDisabled"
    UNKNOWN = "UnknownError"


DEFAULT_INTAKE_STATUS = IntakeStatus.PENDING
DEFAULT_APPOINTMENT_STATUS = AppointmentStatus.PENDING
DEFAULT_JOB_STATUS = JobStatus.PENDING
