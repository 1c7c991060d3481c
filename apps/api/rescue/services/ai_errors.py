"""Error variants raised by the intake AI pipeline.

The set is closed: every failure the pipeline reports is one of the
subclasses below. Each variant carries typed context instead of a
stringified blob, and declares whether the job runtime may retry it and what
the user sees in place of an answer.
"""

from __future__ import annotations

from typing import Any, ClassVar

from rescue.db.enums import ErrorKind

TROUBLE_MESSAGE = (
    "Sorry, I'm having trouble analyzing that right now. Please try again in a moment."
)
PARSE_MESSAGE = (
    "I received a response but couldn't parse it properly. Please try again."
)
VALIDATION_MESSAGE = (
    "I received a response but couldn't validate it. Please try again."
)
GENERIC_MESSAGE = "Sorry, something went wrong on our side. Please try again later."


class IntakeAIError(Exception):
    """Base class for all intake AI failures."""

    kind: ClassVar[ErrorKind] = ErrorKind.UNKNOWN
    retriable: ClassVar[bool] = False
    user_message: ClassVar[str] = GENERIC_MESSAGE

    def context(self) -> dict[str, Any]:
        """Typed context persisted alongside the error (no user free text)."""
        return {}

    def to_payload(self) -> dict[str, Any]:
        return {"error": str(self), "error_type": self.kind.value, **self.context()}


# =============================================================================
# Retriable
# =============================================================================

class ApiConnectionError(IntakeAIError):
    """Network failure or timeout while reaching the AI service."""

    kind = ErrorKind.API_CONNECTION
    retriable = True
    user_message = TROUBLE_MESSAGE

    def __init__(self, message: str, *, timeout: bool = False):
        self.timeout = timeout
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"timeout": self.timeout}


class ApiServerError(IntakeAIError):
    """The AI service answered with a 5xx status."""

    kind = ErrorKind.API_SERVER
    retriable = True
    user_message = TROUBLE_MESSAGE

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Gemini API returned {status_code}")

    def context(self) -> dict[str, Any]:
        return {"status_code": self.status_code}


class TemporaryError(IntakeAIError):
    """Rate limiting or another transient condition."""

    kind = ErrorKind.TEMPORARY
    retriable = True
    user_message = TROUBLE_MESSAGE

    def __init__(self, message: str, *, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"retry_after": self.retry_after}


# =============================================================================
# Non-retriable
# =============================================================================

class ParseError(IntakeAIError):
    """The response envelope has no usable text content."""

    kind = ErrorKind.PARSE
    user_message = PARSE_MESSAGE

    def __init__(self, message: str, *, raw_text: str | None = None, keys: list[str] | None = None):
        self.raw_text = raw_text
        self.keys = keys or []
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"raw_text": self.raw_text, "response_keys": self.keys}


class ValidationError(IntakeAIError):
    """The parsed object is missing required fields."""

    kind = ErrorKind.VALIDATION
    user_message = VALIDATION_MESSAGE

    def __init__(self, missing_fields: list[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"AI response missing required field(s): {', '.join(self.missing_fields)}"
        )

    def context(self) -> dict[str, Any]:
        return {"missing_fields": self.missing_fields}


class ConfigurationError(IntakeAIError):
    """Deployment misconfiguration (missing key, broken prompt template)."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, *, setting: str | None = None):
        self.setting = setting
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"setting": self.setting}


def user_message_for(exc: BaseException) -> str:
    """Fallback text shown in place of the assistant answer."""
    if isinstance(exc, IntakeAIError):
        return exc.user_message
    return GENERIC_MESSAGE
