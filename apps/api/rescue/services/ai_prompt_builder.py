"""Builds context-aware prompts for intake triage.

The first turn gets the *initial* template (species, description and, when a
photo exists, image-analysis instructions). Later turns get the
*conversation* template with the full transcript so the model can build on
earlier answers.
"""

from __future__ import annotations

import logging
from string import Formatter
from typing import Iterable, Mapping, Sequence

from rescue.db.models import ChatMessage, Intake
from rescue.services.ai_errors import ConfigurationError
from rescue.services.ai_prompt_registry import PROMPTS, PromptTemplate

logger = logging.getLogger(__name__)

# At or below this many finalized messages the intake is still on its first turn
INITIAL_MESSAGE_THRESHOLD = 1

INITIAL_KEY = "intake_initial"
CONVERSATION_KEY = "intake_conversation"
IMAGE_INSTRUCTION_KEY = "intake_image_instruction"
IMAGE_NOTE_KEY = "intake_image_note"

REQUIRED_PLACEHOLDERS: dict[str, set[str]] = {
    INITIAL_KEY: {"species", "description", "image_instruction"},
    CONVERSATION_KEY: {"species", "conversation_history", "image_note"},
    IMAGE_INSTRUCTION_KEY: set(),
    IMAGE_NOTE_KEY: set(),
}

ROLE_LABELS = {"USER": "USER", "ASSISTANT": "ASSISTANT"}


def normalize_role(role: str | None) -> str:
    """Map a stored role onto USER, ASSISTANT or UNKNOWN."""
    if not role or not role.strip():
        return "UNKNOWN"
    return ROLE_LABELS.get(role.strip().upper(), "UNKNOWN")


def _placeholders(text: str) -> set[str]:
    try:
        return {name for _, name, _, _ in Formatter().parse(text) if name}
    except ValueError as exc:
        raise ConfigurationError(f"Malformed prompt template: {exc}") from exc


class PromptBuilder:
    """Render the prompt for the next assistant turn of an intake."""

    def __init__(self, prompts: Mapping[str, PromptTemplate] | None = None):
        self._prompts = PROMPTS if prompts is None else prompts

    def build(
        self,
        intake: Intake,
        messages: Iterable[ChatMessage] | None = None,
        *,
        exclude_message_id: int | None = None,
    ) -> str:
        """
        Build the prompt for *intake*.

        *messages* defaults to the intake's chat history; pending placeholders
        are always excluded, as is the message being answered
        (*exclude_message_id*) so a retried turn renders the same prompt.

        Raises:
            ConfigurationError: a template is missing or lacks a placeholder.
        """
        self._validate_configuration()

        history = self._finalized(intake, messages, exclude_message_id)
        if len(history) <= INITIAL_MESSAGE_THRESHOLD:
            logger.info(
                "Using initial prompt (image attached: %s)",
                bool(intake.photo_url),
                extra={"intake_id": intake.id},
            )
            return self._build_initial(intake)

        logger.info(
            "Using conversation prompt (%d messages)",
            len(history),
            extra={"intake_id": intake.id},
        )
        return self._build_conversation(intake, history)

    # ── Internal helpers ─────────────────────────────────────────────

    def _validate_configuration(self) -> None:
        missing_keys = [key for key in REQUIRED_PLACEHOLDERS if key not in self._prompts]
        if missing_keys:
            raise ConfigurationError(
                f"Missing required prompt template(s): {', '.join(missing_keys)}",
                setting="prompts",
            )

        for key, required in REQUIRED_PLACEHOLDERS.items():
            missing = required - _placeholders(self._prompts[key].text)
            if missing:
                raise ConfigurationError(
                    f"Prompt template '{key}' is missing placeholder(s): "
                    f"{', '.join(sorted(missing))}",
                    setting="prompts",
                )

    @staticmethod
    def _finalized(
        intake: Intake,
        messages: Iterable[ChatMessage] | None,
        exclude_message_id: int | None = None,
    ) -> Sequence[ChatMessage]:
        source = intake.chat_messages if messages is None else messages
        return [
            m for m in source
            if not m.pending and (exclude_message_id is None or m.id != exclude_message_id)
        ]

    @staticmethod
    def _species(intake: Intake) -> str:
        return (intake.species or "").strip() or "unknown"

    def _render(self, key: str, **kwargs) -> str:
        try:
            return self._prompts[key].render(**kwargs)
        except (KeyError, IndexError, ValueError) as exc:
            raise ConfigurationError(
                f"Prompt template '{key}' failed to render: {exc}", setting="prompts"
            ) from exc

    def _build_initial(self, intake: Intake) -> str:
        image_instruction = self._prompts[IMAGE_INSTRUCTION_KEY].text if intake.photo_url else ""
        return self._render(
            INITIAL_KEY,
            species=self._species(intake),
            description=intake.description,
            image_instruction=image_instruction,
        )

    def _build_conversation(self, intake: Intake, history: Sequence[ChatMessage]) -> str:
        image_note = self._prompts[IMAGE_NOTE_KEY].text if intake.photo_url else ""
        transcript = "\n\n".join(
            f"{normalize_role(m.role)}: {m.content}" for m in history
        )
        return self._render(
            CONVERSATION_KEY,
            species=self._species(intake),
            conversation_history=transcript,
            image_note=image_note,
        )
