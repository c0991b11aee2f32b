"""
Counting completion barrier.

The producer calls `add()` before handing a record to the channel and a worker
calls `done()` once that record is settled. `wait()` blocks until the count
drops back to zero.
"""

from __future__ import annotations

import threading
from typing import Optional


class CompletionBarrier:
    """
    Lock-protected pending-work counter with a blocking wait.

    `cancel()` releases waiters while work is still outstanding; used when the
    run is aborted and some records will never be settled.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = 0
        self._cancelled = False

    @property
    def pending(self) -> int:
        with self._cond:
            return self._pending

    @property
    def cancelled(self) -> bool:
        with self._cond:
            return self._cancelled

    def add(self, n: int = 1) -> None:
        if n < 0:
            raise ValueError("add() expects a non-negative count; use done() to decrement")
        with self._cond:
            self._pending += n

    def done(self) -> None:
        with self._cond:
            if self._pending == 0:
                raise ValueError("done() called more times than add()")
            self._pending -= 1
            if self._pending == 0:
                self._cond.notify_all()

    def cancel(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the pending count is zero.

        Returns
        -------
        bool
            True when all work is settled; False on timeout or when the
            barrier was cancelled with work still pending.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._pending == 0 or self._cancelled, timeout=timeout)
            return self._pending == 0


__all__ = ["CompletionBarrier"]
