"""
Worker pool that drains the handoff channel into an insert sink.

Each worker is a daemon thread running the same loop:

1. take one record from the channel (exit once it is closed and empty),
2. insert it through the retry policy,
3. mark it settled on the completion barrier: after a successful insert, or
   after the record was handed to the dead-letter sink because the policy
   gave up.

A FatalLoadError from any worker aborts the whole pool: the cancel event is
set, the channel is closed and the barrier is cancelled so neither the producer
nor the orchestrator stays blocked. The error is kept on the pool for the
orchestrator to act on.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from tenacity import RetryCallState, Retrying

from bulk_loader.domain.models import Record
from bulk_loader.errors import FatalLoadError
from bulk_loader.pipeline.barrier import CompletionBarrier
from bulk_loader.pipeline.channel import HandoffChannel
from bulk_loader.pipeline.dead_letter import DeadLetterSink
from bulk_loader.pipeline.retry import RetryPolicy
from bulk_loader.pipeline.sink import InsertSink
from bulk_loader.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_PROGRESS_INTERVAL = 100


@dataclass
class WorkerStats:
    """Counters owned by a single worker thread; read after join."""

    worker_id: int
    inserted: int = 0
    retries: int = 0
    dead_lettered: int = 0
    abandoned: int = 0


class WorkerPool:
    """
    Fixed-size pool of insert workers sharing one channel, sink and barrier.

    Parameters
    ----------
    sink : InsertSink
        Thread-safe single-record insert target.
    channel : HandoffChannel
        Source of records; closing it stops the workers.
    barrier : CompletionBarrier
        Decremented once per settled record.
    retry_policy : RetryPolicy | None
        Per-record retry rules. Defaults to the bounded policy.
    dead_letters : DeadLetterSink | None
        Receives records the policy gave up on. Defaults to an in-memory sink.
    progress_interval : int
        Log a progress line every N successful inserts per worker when `debug`
        is enabled; 0 disables progress lines.
    debug : bool
        Enable per-worker progress logging.
    cancel_event : threading.Event | None
        Shared cancellation flag; a fresh event is created when omitted.
    """

    def __init__(
        self,
        sink: InsertSink,
        channel: HandoffChannel[Record],
        barrier: CompletionBarrier,
        retry_policy: Optional[RetryPolicy] = None,
        dead_letters: Optional[DeadLetterSink] = None,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
        debug: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._sink = sink
        self._channel = channel
        self._barrier = barrier
        self.retry_policy = retry_policy or RetryPolicy()
        self.dead_letters = dead_letters if dead_letters is not None else DeadLetterSink()
        self.progress_interval = progress_interval
        self.debug = debug
        self.cancel_event = cancel_event or threading.Event()
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None
        self._threads: List[threading.Thread] = []
        self._stats: List[WorkerStats] = []

    @property
    def error(self) -> Optional[BaseException]:
        """The error that aborted the pool, if any."""
        with self._lock:
            return self._error

    @property
    def stats(self) -> List[WorkerStats]:
        return list(self._stats)

    @property
    def size(self) -> int:
        return len(self._threads)

    def spawn(self, count: int) -> None:
        """Start `count` worker threads."""
        if count < 1:
            raise ValueError("worker count must be >= 1")
        if self._threads:
            raise RuntimeError("workers have already been spawned for this pool")
        for worker_id in range(1, count + 1):
            stats = WorkerStats(worker_id=worker_id)
            thread = threading.Thread(
                target=self._run,
                name=f"loader-worker-{worker_id}",
                args=(stats,),
                daemon=True,
            )
            self._stats.append(stats)
            self._threads.append(thread)
        for thread in self._threads:
            thread.start()
        log.info(
            f"[POOL] Spawned {count} worker(s)",
            extra={"workers": count, "retry_policy": self.retry_policy.describe()},
        )

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for all workers to exit; returns False if any is still running."""
        for thread in self._threads:
            thread.join(timeout=timeout)
        return not any(thread.is_alive() for thread in self._threads)

    def abort(self, exc: Optional[BaseException] = None) -> None:
        """
        Stop the run: record `exc`, cancel retries, close the channel and
        release anyone waiting on the barrier.
        """
        with self._lock:
            if exc is not None and self._error is None:
                self._error = exc
        self.cancel_event.set()
        self._channel.close()
        self._barrier.cancel()

    def totals(self) -> Dict[str, int]:
        """Aggregate per-worker counters."""
        return {
            "inserted": sum(s.inserted for s in self._stats),
            "retries": sum(s.retries for s in self._stats),
            "dead_lettered": sum(s.dead_lettered for s in self._stats),
            "abandoned": sum(s.abandoned for s in self._stats),
        }

    def _run(self, stats: WorkerStats) -> None:
        retrying = self.retry_policy.retrying(
            cancel_event=self.cancel_event,
            before_sleep=self._log_retry(stats.worker_id),
        )
        try:
            for record in self._channel:
                if self.cancel_event.is_set():
                    self._abandon(record, stats)
                    return
                if not self._process(record, stats, retrying):
                    return
        except Exception as exc:  # noqa: BLE001
            log.exception(f"[WORKER {stats.worker_id}] crashed", extra={"worker": stats.worker_id})
            self.abort(exc)
            return
        log.debug(
            f"[WORKER {stats.worker_id}] channel closed, exiting",
            extra={"worker": stats.worker_id, "inserted": stats.inserted},
        )

    def _process(self, record: Record, stats: WorkerStats, retrying: Retrying) -> bool:
        """Insert one record; returns False when the worker must stop."""
        try:
            retrying(self._sink.insert, record)
        except FatalLoadError as exc:
            log.error(
                f"[WORKER {stats.worker_id}] fatal error, aborting load: {exc}",
                extra={"worker": stats.worker_id, "line": record.line_number},
            )
            self.abort(exc)
            return False
        except Exception as exc:  # noqa: BLE001
            attempts = retrying.statistics.get("attempt_number", 1)
            stats.retries += attempts - 1
            if self.cancel_event.is_set():
                self._abandon(record, stats)
                return False
            stats.dead_lettered += 1
            self.dead_letters.put(record, exc, attempts)
            self._barrier.done()
            return True

        stats.retries += retrying.statistics.get("attempt_number", 1) - 1
        stats.inserted += 1
        if self.debug and self.progress_interval and stats.inserted % self.progress_interval == 0:
            log.info(
                f"[WORKER {stats.worker_id}] inserted {stats.inserted} records",
                extra={"worker": stats.worker_id, "inserted": stats.inserted},
            )
        self._barrier.done()
        return True

    def _abandon(self, record: Record, stats: WorkerStats) -> None:
        """Drop a record because the run was cancelled; it is never marked done."""
        stats.abandoned += 1
        log.warning(
            f"[WORKER {stats.worker_id}] load cancelled, abandoning line {record.line_number}",
            extra={"worker": stats.worker_id, "line": record.line_number},
        )
        self.abort()

    @staticmethod
    def _log_retry(worker_id: int):
        def before_sleep(state: RetryCallState) -> None:
            attempt = state.attempt_number
            if attempt != 1 and attempt % 100 != 0:
                return
            record = state.args[0] if state.args else None
            line = getattr(record, "line_number", None)
            log.warning(
                f"[WORKER {worker_id}] insert failed for line {line} "
                f"(attempt {attempt}), retrying: {state.outcome.exception()}",
                extra={"worker": worker_id, "line": line, "attempt": attempt},
            )

        return before_sleep


def spawn_workers(
    count: int,
    sink: InsertSink,
    channel: HandoffChannel[Record],
    barrier: CompletionBarrier,
    **kwargs,
) -> WorkerPool:
    """Create a WorkerPool and start `count` workers on it."""
    pool = WorkerPool(sink, channel, barrier, **kwargs)
    pool.spawn(count)
    return pool


__all__ = ["DEFAULT_PROGRESS_INTERVAL", "WorkerPool", "WorkerStats", "spawn_workers"]
