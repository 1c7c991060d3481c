"""Intake AI service - runs one assistant turn for an intake.

Sequence: prompt → Gemini → parse → format → persist. Every failure is
handled exactly once here: the pending placeholder is resolved with a
user-safe message, the intake is marked ``error`` with a structured payload,
and known error kinds are re-raised so the job runtime can apply the retry
policy.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from sqlalchemy.orm import Session

from rescue.core.config import Settings, settings as default_settings
from rescue.core.structured_logging import build_log_context
from rescue.db.enums import ErrorKind, IntakeStatus, MessageRole
from rescue.db.models import ChatMessage, Intake
from rescue.services.ai_client import GeminiClient
from rescue.services.ai_errors import (
    ApiConnectionError,
    ApiServerError,
    IntakeAIError,
    user_message_for,
)
from rescue.services.ai_prompt_builder import PromptBuilder
from rescue.services.ai_response_formatter import format_user_message
from rescue.services.ai_response_validation import ResponseParser, TriageResponse

logger = logging.getLogger(__name__)


class IntakeNotFoundError(LookupError):
    """The job references an intake that no longer exists."""


class IntakeAIService:
    """Orchestrates a single AI turn for an intake."""

    def __init__(
        self,
        db: Session,
        *,
        config: Settings | None = None,
        client: GeminiClient | None = None,
        prompt_builder: PromptBuilder | None = None,
        parser: ResponseParser | None = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.client = client or GeminiClient(self.config)
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.parser = parser or ResponseParser()

    async def process(self, intake: Intake, pending_message_id: int | None) -> ChatMessage:
        """
        Produce the assistant answer into the pending message.

        Returns the resolved message. Re-raises ``IntakeAIError`` subclasses
        after persisting the error state; unclassified exceptions are
        contained (logged, persisted, not re-raised).
        """
        log_extra = build_log_context(intake_id=intake.id, message_id=pending_message_id)
        message = self._locate_message(intake, pending_message_id)

        if self.config.AI_ASSISTANT_DISABLED:
            return self._handle_disabled(intake, message)

        try:
            prompt = self.prompt_builder.build(intake, exclude_message_id=message.id)
            logger.info("Prompt built (%d characters)", len(prompt), extra=log_extra)

            envelope = await self._generate(prompt, intake.photo_url or None)
            parsed = self.parser.parse(envelope)
            content = format_user_message(parsed)
        except IntakeAIError as exc:
            log = logger.error if exc.kind == ErrorKind.CONFIGURATION else logger.warning
            log("Intake AI failed: %s (%s)", exc.kind.value, exc, extra=log_extra)
            self._handle_failure(intake, message.id, exc, exc.to_payload())
            raise
        except Exception as exc:
            logger.exception("Unexpected error in intake AI processing", extra=log_extra)
            self._handle_failure(
                intake,
                message.id,
                exc,
                {
                    "error": str(exc),
                    "error_type": ErrorKind.UNKNOWN.value,
                    "class": type(exc).__name__,
                },
            )
            return message

        self._persist_success(intake, message, content, envelope, parsed)
        logger.info(
            "Intake AI turn completed%s",
            " (fallback payload)" if parsed.is_fallback else "",
            extra=log_extra,
        )
        return message

    # ── Steps ────────────────────────────────────────────────────────

    def _locate_message(self, intake: Intake, message_id: int | None) -> ChatMessage:
        message = self._find_message(intake, message_id)
        if message:
            return message

        logger.warning(
            "Pending message not found, creating a new one",
            extra=build_log_context(intake_id=intake.id, message_id=message_id),
        )
        message = ChatMessage(
            intake_id=intake.id,
            role=MessageRole.ASSISTANT.value,
            content="",
            pending=True,
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def _find_message(self, intake: Intake, message_id: int | None) -> ChatMessage | None:
        if message_id is None:
            return None
        return (
            self.db.query(ChatMessage)
            .filter(ChatMessage.id == message_id, ChatMessage.intake_id == intake.id)
            .first()
        )

    async def _generate(self, prompt: str, image_url: str | None) -> dict[str, Any]:
        """Call Gemini, normalising raw transport errors into pipeline errors."""
        try:
            return await self.client.generate(prompt, image_url=image_url)
        except httpx.TimeoutException as exc:
            raise ApiConnectionError(f"Gemini request timed out: {exc}", timeout=True) from exc
        except httpx.TransportError as exc:
            raise ApiConnectionError(f"Gemini connection failed: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code >= 500:
                raise ApiServerError(exc.response.status_code, exc.response.text[:1000]) from exc
            raise

    def _persist_success(
        self,
        intake: Intake,
        message: ChatMessage,
        content: str,
        envelope: dict[str, Any],
        parsed: TriageResponse,
    ) -> None:
        # Message first: it is what the user sees. The intake fields are audit data.
        message.content = content
        message.pending = False
        self.db.commit()

        intake.status = IntakeStatus.RESPONDED.value
        intake.raw_payload = {
            "response": envelope,
            "parsed": parsed.model_dump(exclude_none=True),
        }
        self.db.commit()

    def _handle_failure(
        self,
        intake: Intake,
        message_id: int,
        exc: BaseException,
        payload: dict[str, Any],
    ) -> None:
        self.db.rollback()
        message = self._find_message(intake, message_id)
        fallback_text = user_message_for(exc)

        if message:
            message.content = fallback_text
            message.pending = False
        else:
            logger.warning(
                "Message missing during failure handling, creating error message",
                extra=build_log_context(intake_id=intake.id, message_id=message_id),
            )
            self.db.add(
                ChatMessage(
                    intake_id=intake.id,
                    role=MessageRole.ASSISTANT.value,
                    content=fallback_text,
                    pending=False,
                )
            )

        intake.status = IntakeStatus.ERROR.value
        intake.raw_payload = payload
        self.db.commit()

    def _handle_disabled(self, intake: Intake, message: ChatMessage) -> ChatMessage:
        disabled_message = self.config.AI_ASSISTANT_DISABLED_MESSAGE
        logger.info(
            "Assistant disabled, skipping AI call",
            extra=build_log_context(intake_id=intake.id, message_id=message.id),
        )
        message.content = disabled_message
        message.pending = False
        intake.status = IntakeStatus.ERROR.value
        intake.raw_payload = {
            "error": disabled_message,
            "error_type": ErrorKind.ASSISTANT_DISABLED.value,
        }
        self.db.commit()
        return message


async def process_intake(
    db: Session,
    intake_id: int,
    pending_message_id: int | None,
    **kwargs,
) -> ChatMessage:
    """Load the intake and run one AI turn (entry point for the worker)."""
    intake = db.get(Intake, intake_id)
    if not intake:
        raise IntakeNotFoundError(f"Intake {intake_id} not found")
    return await IntakeAIService(db, **kwargs).process(intake, pending_message_id)
