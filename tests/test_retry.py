from __future__ import annotations

import pytest

from delegateai.llm.client import ModelRequestError
from delegateai.llm.retry import call_with_retry, is_retryable


class FlakyCall:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


@pytest.mark.parametrize(
    "message",
    [
        "Rate limit exceeded. Model request failed with HTTP 429: Too Many Requests",
        "rate_limit_error",
        "Model request timed out after 120.0s",
        "Request timeout",
        "Model request connection error: refused",
    ],
)
def test_transient_errors_are_retryable(message: str) -> None:
    assert is_retryable(ModelRequestError(message)) is True


@pytest.mark.parametrize(
    "message",
    ["Model request failed with HTTP 401: Unauthorized", "invalid api key", "HTTP 400"],
)
def test_permanent_errors_are_not_retryable(message: str) -> None:
    assert is_retryable(ModelRequestError(message)) is False


def test_success_on_first_attempt_does_not_sleep() -> None:
    sleeps: list[float] = []
    call = FlakyCall([])

    assert call_with_retry(call, sleep=sleeps.append) == "ok"
    assert call.calls == 1
    assert sleeps == []


def test_transient_failures_back_off_exponentially() -> None:
    sleeps: list[float] = []
    call = FlakyCall([ModelRequestError("HTTP 429"), ModelRequestError("connection reset")])

    assert call_with_retry(call, max_attempts=3, sleep=sleeps.append) == "ok"
    assert call.calls == 3
    assert sleeps == [1.0, 2.0]


def test_final_transient_failure_propagates() -> None:
    sleeps: list[float] = []
    call = FlakyCall([ModelRequestError("timeout")] * 3)

    with pytest.raises(ModelRequestError, match="timeout"):
        call_with_retry(call, max_attempts=3, sleep=sleeps.append)

    assert call.calls == 3
    assert sleeps == [1.0, 2.0]


def test_permanent_failure_is_not_retried() -> None:
    sleeps: list[float] = []
    call = FlakyCall([ModelRequestError("HTTP 401: Unauthorized")])

    with pytest.raises(ModelRequestError):
        call_with_retry(call, sleep=sleeps.append)

    assert call.calls == 1
    assert sleeps == []


def test_other_exceptions_pass_through_untouched() -> None:
    call = FlakyCall([KeyError("boom")])

    with pytest.raises(KeyError):
        call_with_retry(call, sleep=lambda _delay: None)

    assert call.calls == 1
