"""Retry policy for background jobs.

Maps the exception a handler raised onto a decision: reschedule it with
exponential backoff, discard it (retrying cannot help), or fail it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from rescue.services.ai_errors import (
    ApiConnectionError,
    ApiServerError,
    ConfigurationError,
    ParseError,
    TemporaryError,
    ValidationError,
)
from rescue.services.intake_ai_service import IntakeNotFoundError

MAX_BACKOFF_SECONDS = 300


class RetryAction(str, Enum):
    RETRY = "retry"
    DISCARD = "discard"
    FAIL = "fail"


@dataclass(frozen=True)
class RetryRule:
    action: RetryAction
    max_attempts: int = 1
    wait_seconds: float = 0

    def backoff_for(self, attempt: int) -> float:
        """Delay before the next run, given the 1-based attempt that just failed."""
        exponent = max(attempt - 1, 0)
        return min(MAX_BACKOFF_SECONDS, self.wait_seconds * (2 ** exponent))


RETRY_RULES: tuple[tuple[type[BaseException], RetryRule], ...] = (
    (ApiConnectionError, RetryRule(RetryAction.RETRY, max_attempts=3, wait_seconds=5)),
    (ApiServerError, RetryRule(RetryAction.RETRY, max_attempts=2, wait_seconds=10)),
    (TemporaryError, RetryRule(RetryAction.RETRY, max_attempts=3, wait_seconds=5)),
    (ParseError, RetryRule(RetryAction.DISCARD)),
    (ValidationError, RetryRule(RetryAction.DISCARD)),
    (ConfigurationError, RetryRule(RetryAction.DISCARD)),
    (IntakeNotFoundError, RetryRule(RetryAction.DISCARD)),
)

DEFAULT_RULE = RetryRule(RetryAction.FAIL)


def rule_for(exc: BaseException) -> RetryRule:
    for exc_type, rule in RETRY_RULES:
        if isinstance(exc, exc_type):
            return rule
    return DEFAULT_RULE


def should_retry(exc: BaseException, attempts: int) -> bool:
    """True when *exc* is retriable and *attempts* has not used up the budget."""
    rule = rule_for(exc)
    return rule.action == RetryAction.RETRY and attempts < rule.max_attempts
