"""Parsing and validation of Gemini triage responses.

The model's common failure modes are an apologetic preamble before the JSON,
a stray code fence, or a small syntax slip. The parser recovers what it can
and otherwise returns a safe fallback payload instead of raising, so the user
still gets a usable (if generic) answer.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from rescue.services.ai_errors import ParseError, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "species",
    "condition",
    "injury",
    "handling",
    "danger",
    "error",
    "user_message",
)

DEFAULT_FALLBACK_MESSAGE = (
    "The information so far isn't enough for me to give safe and specific "
    "first-aid guidance. Could you share a bit more about what's going on with "
    "the animal? Any extra details will help me guide you better."
)

_FENCE_OPEN = re.compile(r"\A\s*```[\w-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```\s*\Z")


class TriageResponse(BaseModel):
    """Validated triage answer from the model."""

    model_config = ConfigDict(extra="allow")

    species: str
    condition: str
    injury: str
    handling: str
    danger: str
    error: str
    user_message: str
    raw_text: str | None = None

    @field_validator(*REQUIRED_FIELDS, mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return str(value)

    @property
    def is_fallback(self) -> bool:
        return self.raw_text is not None


# ── Text helpers ─────────────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang fence and a trailing ``` fence."""
    content = _FENCE_OPEN.sub("", text or "", count=1)
    content = _FENCE_CLOSE.sub("", content, count=1)
    return content.strip()


def extract_braced_content(text: str) -> str | None:
    """Substring from the first ``{`` to the last ``}``, or ``None``."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start:end + 1].strip()


def extract_json_string(cleaned_text: str) -> str:
    """Best candidate JSON substring, tolerating leading/trailing prose."""
    stripped = cleaned_text.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        return stripped
    return extract_braced_content(stripped) or stripped


def parse_json_object(text: str) -> dict | None:
    """Parse a JSON object out of noisy model text; ``None`` when impossible."""
    cleaned = strip_code_fences(text)
    candidate = extract_json_string(cleaned)
    if "{" not in candidate or "}" not in candidate:
        return None

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        braced = extract_braced_content(cleaned)
        if not braced or braced == candidate:
            logger.warning("Failed to parse JSON object: %s", exc)
            return None
        logger.warning("Retrying parse with extracted braces substring")
        try:
            data = json.loads(braced)
        except json.JSONDecodeError as inner_exc:
            logger.warning("Failed to parse JSON object: %s", inner_exc)
            return None
    return data if isinstance(data, dict) else None


def fallback_response(cleaned_text: str, reason: str) -> dict[str, Any]:
    """Payload that satisfies every required field with neutral defaults."""
    return {
        "species": "unknown",
        "condition": "unknown",
        "injury": "unknown",
        "handling": "",
        "danger": "unknown",
        "error": f"Invalid JSON in AI response: {reason}",
        "user_message": DEFAULT_FALLBACK_MESSAGE,
        "raw_text": cleaned_text,
    }


def missing_required_fields(data: dict) -> list[str]:
    return [field for field in REQUIRED_FIELDS if field not in data]


def validate_triage(data: dict) -> TriageResponse:
    """
    Validate a parsed object.

    Raises:
        ValidationError: a required field is absent.
    """
    missing = missing_required_fields(data)
    if missing:
        logger.error(
            "Missing required fields: %s (received: %s)",
            ", ".join(missing),
            ", ".join(sorted(str(k) for k in data)),
        )
        raise ValidationError(missing)
    try:
        return TriageResponse.model_validate(data)
    except PydanticValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise ValidationError(fields or list(REQUIRED_FIELDS)) from exc


# ── Envelope parsing ─────────────────────────────────────────────────

class ResponseParser:
    """Turn a Gemini ``generateContent`` envelope into a ``TriageResponse``."""

    def parse(self, raw_response: dict[str, Any]) -> TriageResponse:
        """
        Raises:
            ParseError: the envelope has no text part.
            ValidationError: a syntactically valid object lacks required fields.
        """
        text = self.extract_text(raw_response)
        cleaned = strip_code_fences(text)

        data = parse_json_object(cleaned)
        if data is None:
            reason = (
                "No JSON object found"
                if extract_braced_content(cleaned) is None
                else "Unparseable JSON object"
            )
            logger.warning("Using fallback payload: %s", reason)
            data = fallback_response(cleaned, reason)

        return validate_triage(data)

    @staticmethod
    def extract_text(raw_response: Any) -> str:
        """Return ``candidates[0].content.parts[0].text``."""
        try:
            text = raw_response["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None

        if not isinstance(text, str):
            keys = sorted(raw_response.keys()) if isinstance(raw_response, dict) else []
            logger.error("Invalid response structure (keys: %s)", keys)
            raise ParseError(
                "Invalid API response structure: missing text content", keys=keys
            )
        return text
