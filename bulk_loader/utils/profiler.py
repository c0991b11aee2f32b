"""
Resource profiling for a load run.

`profile_block` wraps the run and records wall time, process CPU % and, from a
background sampler, peak RSS and the peak number of OS threads (the worker
pool shows up there). All measurements come from psutil.

Usage:
    from bulk_loader.utils.profiler import profile_block

    with profile_block("load:records") as stats:
        load_records(...)

    print(stats.duration_seconds, stats.peak_rss_bytes, stats.extra["peak_threads"])
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """Measurements for one profiled block; filled in when the block exits."""

    label: str
    start_ts: float = 0.0
    end_ts: float = 0.0
    duration_seconds: float = 0.0
    peak_rss_bytes: Optional[int] = None
    cpu_percent: Optional[float] = None
    extra: dict[str, Any] = field(default_factory=dict)


class _PeakSampler(threading.Thread):
    """Polls RSS and thread count until stopped, keeping the maxima."""

    def __init__(self, process: psutil.Process, interval_s: float) -> None:
        super().__init__(name="profiler-sampler", daemon=True)
        self._process = process
        self._interval_s = interval_s
        self._stop_event = threading.Event()
        self.peak_rss = 0
        self.peak_threads = 0
        self._sample()

    def _sample(self) -> bool:
        try:
            with self._process.oneshot():
                self.peak_rss = max(self.peak_rss, self._process.memory_info().rss)
                self.peak_threads = max(self.peak_threads, self._process.num_threads())
        except psutil.Error:
            return False
        return True

    def run(self) -> None:
        while not self._stop_event.wait(self._interval_s):
            if not self._sample():
                return

    def stop(self) -> None:
        self._stop_event.set()
        self.join(timeout=1.0)
        self._sample()


@contextlib.contextmanager
def profile_block(label: str, sample_interval_ms: int = 100) -> Generator[ProfileStats, None, None]:
    """
    Profile the enclosed block.

    Parameters
    ----------
    label : str
        Name recorded in the stats and in persisted results.
    sample_interval_ms : int
        Sampling period for RSS and thread count.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    process.cpu_percent(interval=None)  # first call only primes the counter
    sampler = _PeakSampler(process, sample_interval_ms / 1000.0)
    sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        sampler.stop()
        stats.peak_rss_bytes = sampler.peak_rss or None
        stats.cpu_percent = process.cpu_percent(interval=None)
        stats.extra["peak_threads"] = sampler.peak_threads


__all__ = ["ProfileStats", "profile_block"]
