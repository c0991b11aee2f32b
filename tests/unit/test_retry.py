from __future__ import annotations

import threading

import pytest

from bulk_loader.config import Settings
from bulk_loader.errors import ConnectionAcquireError, InsertError
from bulk_loader.pipeline.retry import RetryPolicy

NO_BACKOFF = {"backoff_initial": 0.0, "backoff_max": 0.0}


class _Flaky:
    def __init__(self, failures: int, exc: Exception) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


def test_transient_failure_is_retried_until_success() -> None:
    policy = RetryPolicy(max_attempts=5, **NO_BACKOFF)
    op = _Flaky(failures=3, exc=InsertError("deadlock"))

    retrying = policy.retrying()
    assert retrying(op) == "ok"
    assert op.calls == 4
    assert retrying.statistics["attempt_number"] == 4


def test_bounded_policy_gives_up_and_reraises() -> None:
    policy = RetryPolicy(max_attempts=3, **NO_BACKOFF)
    op = _Flaky(failures=10, exc=InsertError("still down"))

    with pytest.raises(InsertError, match="still down"):
        policy.retrying()(op)
    assert op.calls == 3


def test_permanent_failure_is_not_retried_by_default() -> None:
    policy = RetryPolicy(max_attempts=5, **NO_BACKOFF)
    op = _Flaky(failures=10, exc=InsertError("duplicate key", permanent=True))

    with pytest.raises(InsertError):
        policy.retrying()(op)
    assert op.calls == 1


def test_permanent_failure_retried_when_enabled() -> None:
    policy = RetryPolicy(max_attempts=4, retry_permanent=True, **NO_BACKOFF)
    op = _Flaky(failures=10, exc=InsertError("duplicate key", permanent=True))

    with pytest.raises(InsertError):
        policy.retrying()(op)
    assert op.calls == 4


def test_fatal_error_is_never_retried() -> None:
    policy = RetryPolicy.unbounded()
    op = _Flaky(failures=10, exc=ConnectionAcquireError("pool closed"))

    with pytest.raises(ConnectionAcquireError):
        policy.retrying()(op)
    assert op.calls == 1


def test_unbounded_policy_keeps_trying() -> None:
    policy = RetryPolicy.unbounded()
    op = _Flaky(failures=250, exc=InsertError("busy", permanent=True))

    assert policy.retrying()(op) == "ok"
    assert op.calls == 251
    assert policy.max_attempts is None
    assert not policy.bounded


def test_cancel_event_stops_retrying() -> None:
    policy = RetryPolicy.unbounded()
    cancel = threading.Event()

    def op() -> None:
        cancel.set()
        raise InsertError("transient")

    with pytest.raises(InsertError):
        policy.retrying(cancel_event=cancel)(op)


def test_before_sleep_is_called_between_attempts() -> None:
    policy = RetryPolicy(max_attempts=3, **NO_BACKOFF)
    seen: list[int] = []

    with pytest.raises(InsertError):
        policy.retrying(before_sleep=lambda state: seen.append(state.attempt_number))(
            _Flaky(failures=5, exc=InsertError("x"))
        )
    assert seen == [1, 2]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"backoff_initial": -1.0},
        {"backoff_max": -0.5},
    ],
)
def test_invalid_policy_is_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_from_settings_zero_attempts_means_unlimited() -> None:
    settings = Settings(retry_max_attempts=0, retry_backoff_initial_s=0.0, retry_permanent_errors=True)
    policy = RetryPolicy.from_settings(settings)

    assert policy.max_attempts is None
    assert policy.retry_permanent
    assert "attempts=unlimited" in policy.describe()


def test_default_policy_is_bounded() -> None:
    policy = RetryPolicy()
    assert policy.bounded
    assert policy.max_attempts == 5
    assert "attempts=5" in policy.describe()
