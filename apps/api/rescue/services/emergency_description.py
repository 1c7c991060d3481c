"""Short, voice-friendly emergency summary read to the vet during the call."""

from __future__ import annotations

import html
import re

import nh3

from rescue.db.enums import MessageRole
from rescue.db.models import Intake

MAX_DESCRIPTION_LENGTH = 150
MAX_USER_TEXT_LENGTH = 100
OMISSION = "..."

_FIRST_SENTENCE = re.compile(r"\.(?=\s|$)")
_WHITESPACE = re.compile(r"\s+")


def truncate(text: str, length: int) -> str:
    """Cut *text* to *length* characters, ``...`` included."""
    if len(text) <= length:
        return text
    return text[: length - len(OMISSION)] + OMISSION


def strip_html(text: str) -> str:
    """Plain text of an HTML fragment (tags dropped, entities decoded)."""
    cleaned = nh3.clean(text, tags=set())
    return _WHITESPACE.sub(" ", html.unescape(cleaned)).strip()


def first_sentence(text: str) -> str:
    sentence = _FIRST_SENTENCE.split(text, maxsplit=1)[0].strip()
    if not sentence.endswith("."):
        sentence += "."
    return sentence


def build_emergency_description(intake: Intake) -> str:
    """
    Describe the emergency in one line, preferring the assistant's assessment.

    Falls back to the user's own messages, then to a generic
    ``"A <species> emergency"`` when the conversation is empty.
    """
    messages = list(intake.chat_messages)
    species = intake.species or "animal"

    assessments = [
        m.content
        for m in messages
        if m.role == MessageRole.ASSISTANT.value and not m.pending and (m.content or "").strip()
    ]
    if assessments:
        text_only = strip_html(assessments[-1])
        if text_only:
            return truncate(first_sentence(text_only), MAX_DESCRIPTION_LENGTH)

    if messages:
        user_text = ". ".join(
            m.content for m in messages if m.role == MessageRole.USER.value and m.content
        )
        description = f"A {species} with {truncate(user_text, MAX_USER_TEXT_LENGTH)}"
        return truncate(description, MAX_DESCRIPTION_LENGTH)

    return truncate(f"A {species} emergency", MAX_DESCRIPTION_LENGTH)
