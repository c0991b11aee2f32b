"""
Per-record retry policy.

Workers run every insert through a tenacity `Retrying` built from a
`RetryPolicy`. The policy decides how many attempts a record gets, how long to
back off between them, and which failures are worth retrying at all:

- FatalLoadError is never retried.
- InsertError(permanent=True) is retried only when `retry_permanent` is set.
- Anything else raised by the insert is treated as transient.

`RetryPolicy.unbounded()` keeps trying every non-fatal failure forever with no
backoff. A record that can never be inserted then stalls its worker; prefer the
bounded default together with a dead-letter sink.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_never,
    stop_when_event_set,
    wait_exponential,
    wait_none,
)
from tenacity.nap import sleep as _default_sleep

from bulk_loader.errors import FatalLoadError, InsertError


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for a single record.

    Attributes
    ----------
    max_attempts : int | None
        Total attempts including the first; None retries without limit.
    backoff_initial : float
        First backoff delay in seconds; 0 disables backoff.
    backoff_max : float
        Upper bound for the exponential backoff delay.
    retry_permanent : bool
        Whether failures classified as permanent are retried too.
    """

    max_attempts: Optional[int] = 5
    backoff_initial: float = 0.05
    backoff_max: float = 2.0
    retry_permanent: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1 or None for unlimited")
        if self.backoff_initial < 0 or self.backoff_max < 0:
            raise ValueError("backoff delays must be non-negative")

    @classmethod
    def unbounded(cls) -> "RetryPolicy":
        """Retry every non-fatal failure forever, back to back."""
        return cls(max_attempts=None, backoff_initial=0.0, backoff_max=0.0, retry_permanent=True)

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        """Build a policy from Settings; `retry_max_attempts=0` means unlimited."""
        return cls(
            max_attempts=settings.retry_max_attempts or None,
            backoff_initial=settings.retry_backoff_initial_s,
            backoff_max=settings.retry_backoff_max_s,
            retry_permanent=settings.retry_permanent_errors,
        )

    @property
    def bounded(self) -> bool:
        return self.max_attempts is not None or not self.retry_permanent

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, FatalLoadError):
            return False
        if isinstance(exc, InsertError) and exc.permanent:
            return self.retry_permanent
        return isinstance(exc, Exception)

    def retrying(
        self,
        cancel_event: Optional[threading.Event] = None,
        before_sleep: Optional[Callable[[RetryCallState], None]] = None,
    ) -> Retrying:
        """
        Build a tenacity controller for this policy.

        The last exception is re-raised when the policy gives up. When
        `cancel_event` is given, setting it stops further attempts and wakes
        any backoff sleep early.
        """
        stop = stop_never if self.max_attempts is None else stop_after_attempt(self.max_attempts)
        sleep = _default_sleep
        if cancel_event is not None:
            stop = stop | stop_when_event_set(cancel_event)
            sleep = cancel_event.wait

        if self.backoff_initial > 0:
            wait = wait_exponential(
                multiplier=self.backoff_initial,
                min=self.backoff_initial,
                max=max(self.backoff_max, self.backoff_initial),
            )
        else:
            wait = wait_none()

        return Retrying(
            stop=stop,
            wait=wait,
            retry=retry_if_exception(self.is_retryable),
            sleep=sleep,
            before_sleep=before_sleep,
            reraise=True,
        )

    def describe(self) -> str:
        attempts = "unlimited" if self.max_attempts is None else str(self.max_attempts)
        return (
            f"attempts={attempts} backoff={self.backoff_initial}s..{self.backoff_max}s "
            f"retry_permanent={self.retry_permanent}"
        )


__all__ = ["RetryPolicy"]
