import pytest

from rescue.jobs.retry_policy import (
    MAX_BACKOFF_SECONDS,
    RetryAction,
    rule_for,
    should_retry,
)
from rescue.services.ai_errors import (
    ApiConnectionError,
    ApiServerError,
    ConfigurationError,
    ParseError,
    TemporaryError,
    ValidationError,
)
from rescue.services.intake_ai_service import IntakeNotFoundError


@pytest.mark.parametrize(
    "exc,action,attempts",
    [
        (ApiConnectionError("down"), RetryAction.RETRY, 3),
        (ApiServerError(500), RetryAction.RETRY, 2),
        (TemporaryError("rate limited"), RetryAction.RETRY, 3),
        (ParseError("bad"), RetryAction.DISCARD, 1),
        (ValidationError(["danger"]), RetryAction.DISCARD, 1),
        (ConfigurationError("no key"), RetryAction.DISCARD, 1),
        (IntakeNotFoundError("gone"), RetryAction.DISCARD, 1),
        (RuntimeError("boom"), RetryAction.FAIL, 1),
    ],
)
def test_policy_table(exc, action, attempts):
    rule = rule_for(exc)
    assert rule.action == action
    assert rule.max_attempts == attempts


def test_backoff_doubles_per_attempt():
    rule = rule_for(ApiConnectionError("down"))
    assert [rule.backoff_for(n) for n in (1, 2, 3)] == [5, 10, 20]


def test_backoff_is_capped():
    rule = rule_for(ApiServerError(502))
    assert rule.backoff_for(10) == MAX_BACKOFF_SECONDS


def test_should_retry_respects_attempt_budget():
    exc = ApiServerError(500)
    assert should_retry(exc, 1) is True
    assert should_retry(exc, 2) is False
    assert should_retry(ParseError("bad"), 0) is False
