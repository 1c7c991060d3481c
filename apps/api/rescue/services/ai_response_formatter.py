"""Render the assistant message shown to the user.

The model writes a short narrative plus free-form handling steps; the list
markup is produced here so it renders the same way whatever the phrasing.
"""

from __future__ import annotations

import html
import re

from rescue.services.ai_response_validation import TriageResponse

HANDLING_MARKER = "Here's what to do:"
APPENDED_HEADING = "What to do:"
HANDLING_LIST_CLASS = "handling-list mt-3 mb-3"
HEADING_STYLE = "margin-top: 10px;"
DEFAULT_MESSAGE = "I've analyzed your submission but couldn't generate a response message."

_SENTENCE_BOUNDARY = re.compile(r"\.(?:\s+|\Z)")


def split_into_sentences(text: str) -> list[str]:
    """Split on a period followed by whitespace or end of text."""
    return [piece.strip() for piece in _SENTENCE_BOUNDARY.split(text) if piece.strip()]


def build_handling_list(handling: str) -> str:
    items = "".join(
        f"<li>{html.escape(sentence, quote=False)}.</li>"
        for sentence in split_into_sentences(handling)
    )
    if not items:
        return ""
    return f'<ul class="{HANDLING_LIST_CLASS}">{items}</ul>'


def _heading(text: str) -> str:
    return f'<h3 style="{HEADING_STYLE}">{text}</h3>'


def format_user_message(response: TriageResponse) -> str:
    """Message with the handling steps spliced in at the marker or appended."""
    message = response.user_message if response.user_message.strip() else DEFAULT_MESSAGE
    handling = response.handling.strip()
    if not handling:
        return message

    handling_html = build_handling_list(handling)
    if not handling_html:
        return message

    if HANDLING_MARKER in message:
        before, after = re.split(rf"{re.escape(HANDLING_MARKER)}\s*", message, maxsplit=1)
        formatted = f"{before}{_heading(HANDLING_MARKER)}\n\n{handling_html}"
        return f"{formatted}\n\n{after}" if after else formatted

    return f"{message}\n\n{_heading(APPENDED_HEADING)}\n\n{handling_html}"
