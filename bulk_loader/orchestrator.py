"""
Orchestrator for a parallel CSV load: wires the record source, handoff channel,
worker pool and completion barrier, profiles the run and reports the result.

Usage (example from CLI):
    from bulk_loader.config import load_config_file
    from bulk_loader.orchestrator import run_load

    settings = load_config_file("loader.json")
    result = run_load("data.csv", settings)
    print(result["inserted"], result["duration_seconds"])

`load_records` is the core run and takes any `RecordSource` plus a sink factory,
which keeps it testable without a database.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional

from bulk_loader.config import Settings, get_settings
from bulk_loader.domain.models import LoadResult
from bulk_loader.errors import EmptySourceError, FatalLoadError, SourceReadError
from bulk_loader.infrastructure.db_factory import create_pool
from bulk_loader.infrastructure.sink import PooledInsertSink
from bulk_loader.pipeline.barrier import CompletionBarrier
from bulk_loader.pipeline.channel import ChannelClosed, HandoffChannel
from bulk_loader.pipeline.dead_letter import DeadLetterSink
from bulk_loader.pipeline.retry import RetryPolicy
from bulk_loader.pipeline.sink import SinkFactory
from bulk_loader.pipeline.workers import DEFAULT_PROGRESS_INTERVAL, WorkerPool
from bulk_loader.source import RecordSource, open_source
from bulk_loader.utils.logging import get_logger
from bulk_loader.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)

FailurePolicy = Literal["strict", "tolerant"]

_WAIT_POLL_SECONDS = 0.1


@dataclass
class LoadConfig:
    """
    Resolved parameters for one load run.

    Attributes
    ----------
    table : str
        Target table, optionally schema-qualified.
    workers : int
        Number of insert workers.
    retry_policy : RetryPolicy
        Per-record retry rules.
    progress_interval : int
        Per-worker progress logging interval (debug only).
    debug : bool
        Enable progress logging.
    failure_policy : "strict" | "tolerant"
        On a fatal error, raise ("strict") or return a result with `error` set.
    """

    table: str
    workers: int = 10
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    debug: bool = False
    failure_policy: FailurePolicy = "strict"

    @classmethod
    def from_settings(cls, settings: Settings, failure_policy: FailurePolicy = "strict") -> "LoadConfig":
        return cls(
            table=settings.db_table,
            workers=settings.total_worker,
            retry_policy=RetryPolicy.from_settings(settings),
            progress_interval=settings.progress_interval,
            debug=settings.debug,
            failure_policy=failure_policy,
        )


def _round_float(value: float, decimals: int = 2) -> float:
    """Round a float to specified decimal places for human-readable output."""
    return round(value, decimals)


def _feed(
    source: RecordSource,
    channel: HandoffChannel,
    barrier: CompletionBarrier,
    cancel_event: threading.Event,
) -> tuple[int, Optional[SourceReadError]]:
    """
    Push every record from the source into the channel.

    Returns the number of records handed to a worker and the read error that
    stopped production early, if any. The channel is always closed on return.
    """
    dispatched = 0
    try:
        for record in source:
            if cancel_event.is_set():
                break
            barrier.add(1)
            try:
                channel.send(record)
            except ChannelClosed:
                # Withdrawn: the pool aborted before a worker took it.
                barrier.done()
                break
            dispatched += 1
    except SourceReadError as exc:
        log.error(
            f"[SOURCE] Read failed after {dispatched} records, stopping production: {exc}",
            extra={"dispatched": dispatched, "line": exc.line_number},
        )
        return dispatched, exc
    finally:
        channel.close()
    return dispatched, None


def _await_completion(barrier: CompletionBarrier, pool: WorkerPool) -> bool:
    """
    Block until every dispatched record is settled.

    Polls so that a cancel event set from outside the pool is noticed even
    while every worker is idle. Returns False if the run was aborted.
    """
    while not barrier.wait(timeout=_WAIT_POLL_SECONDS):
        if barrier.cancelled:
            return False
        if pool.cancel_event.is_set():
            pool.abort()
            return False
    return True


def load_records(
    source: RecordSource,
    sink_factory: SinkFactory,
    config: LoadConfig,
    dead_letters: Optional[DeadLetterSink] = None,
    cancel_event: Optional[threading.Event] = None,
) -> LoadResult:
    """
    Run the producer/worker pipeline over `source`.

    Reads the header, builds the sink from it, starts `config.workers` workers,
    feeds records from the calling thread and blocks until every dispatched
    record is settled.

    Raises
    ------
    FatalLoadError
        When a worker hit a fatal error and `config.failure_policy` is "strict".
    """
    start = time.perf_counter()
    dead_letters = dead_letters if dead_letters is not None else DeadLetterSink()

    try:
        header = source.read_header()
    except EmptySourceError as exc:
        log.warning(f"[LOAD] {exc}; nothing to load")
        return LoadResult(
            table=config.table,
            rows=0,
            inserted=0,
            dead_lettered=0,
            retries=0,
            workers=0,
            duration_seconds=time.perf_counter() - start,
            throughput_rows_per_sec=0.0,
            source_error=None,
            error=None,
            notes="Empty source.",
        )

    log.info(
        f"[LOAD START] table={config.table} workers={config.workers}",
        extra={"table": config.table, "workers": config.workers, "columns": list(header.columns)},
    )
    if not config.retry_policy.bounded:
        log.warning("[LOAD] Retry policy is unbounded; a record that never inserts stalls its worker")
    sink = sink_factory(header)
    dead_letters.open(header)

    channel: HandoffChannel = HandoffChannel()
    barrier = CompletionBarrier()
    pool = WorkerPool(
        sink,
        channel,
        barrier,
        retry_policy=config.retry_policy,
        dead_letters=dead_letters,
        progress_interval=config.progress_interval,
        debug=config.debug,
        cancel_event=cancel_event,
    )
    try:
        pool.spawn(config.workers)
        dispatched, source_error = _feed(source, channel, barrier, pool.cancel_event)
        completed = _await_completion(barrier, pool)
    except KeyboardInterrupt:
        log.warning("[LOAD] Interrupted, cancelling workers")
        pool.abort()
        raise
    finally:
        # After an abort a worker may still be inside a slow statement.
        all_exited = pool.join(timeout=5.0 if pool.cancel_event.is_set() else None)
        if not all_exited:
            log.warning("[LOAD] Some workers did not exit after abort")
        dead_letters.close()

    duration = time.perf_counter() - start
    totals = pool.totals()
    result = LoadResult(
        table=config.table,
        rows=dispatched,
        inserted=totals["inserted"],
        dead_lettered=totals["dead_lettered"],
        retries=totals["retries"],
        workers=pool.size,
        duration_seconds=duration,
        throughput_rows_per_sec=totals["inserted"] / duration if duration > 0 else 0.0,
        source_error=str(source_error) if source_error else None,
        error=None,
        notes=f"retry policy: {config.retry_policy.describe()}",
        extra={"abandoned": totals["abandoned"], "columns": list(header.columns)},
    )

    if pool.error is not None:
        error = pool.error
        result["error"] = str(error)
        result["extra"]["error_type"] = type(error).__name__
        result["extra"]["failure_policy"] = config.failure_policy
        log.error(
            f"[LOAD FAILED] {error}",
            extra={"inserted": result["inserted"], "dispatched": dispatched},
        )
        if config.failure_policy == "strict":
            if isinstance(error, FatalLoadError):
                raise error
            raise FatalLoadError(f"Worker crashed: {error}") from error
        return result

    if not completed or pool.cancel_event.is_set():
        result["error"] = "Load cancelled before completion"
        result["extra"]["cancelled"] = True
        log.warning(
            f"[LOAD CANCELLED] {result['inserted']} inserted before cancellation",
            extra={"inserted": result["inserted"], "dispatched": dispatched},
        )
        return result

    log.info(
        f"[LOAD COMPLETE] {result['inserted']} inserted, {result['dead_lettered']} dead-lettered",
        extra={
            "rows": dispatched,
            "inserted": result["inserted"],
            "dead_lettered": result["dead_lettered"],
            "retries": result["retries"],
        },
    )
    return result


def _merge_result(result: LoadResult, stats: ProfileStats) -> dict:
    """Merge a load result with profiler stats, rounding floats for readability."""
    merged = dict(result)
    merged.setdefault("rows", 0)
    merged.setdefault("inserted", 0)
    merged["duration_seconds"] = _round_float(stats.duration_seconds)
    merged["throughput_rows_per_sec"] = (
        _round_float(merged["inserted"] / stats.duration_seconds) if stats.duration_seconds else 0.0
    )
    merged["peak_rss_bytes"] = stats.peak_rss_bytes
    merged["cpu_percent"] = _round_float(stats.cpu_percent, 1) if stats.cpu_percent else None
    merged["profile"] = {
        "label": stats.label,
        "start_ts": _round_float(stats.start_ts, 3),
        "end_ts": _round_float(stats.end_ts, 3),
        "duration_seconds": _round_float(stats.duration_seconds),
        "peak_threads": stats.extra.get("peak_threads"),
    }
    return merged


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True, default=str)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def run_load(
    csv_path: Path | str,
    settings: Optional[Settings] = None,
    failure_policy: FailurePolicy = "strict",
    persist: bool = False,
    results_dir: Path | str = "results",
) -> dict:
    """
    Load a delimited file into the configured table.

    Opens the connection pool, runs `load_records` under the profiler, closes
    the pool and optionally writes the summary to `results_dir`.

    Parameters
    ----------
    csv_path : Path | str
        Input file; its first row names the target columns.
    settings : Settings | None
        Effective configuration. Defaults to `get_settings()`.
    failure_policy : "strict" | "tolerant"
        Whether a fatal error raises or is returned in the result.
    persist : bool
        Whether to write `latest.json` and a timestamped archive.
    results_dir : Path | str
        Directory for persisted results.

    Returns
    -------
    dict
        The load result merged with profiler stats.
    """
    settings = settings or get_settings()
    config = LoadConfig.from_settings(settings, failure_policy=failure_policy)
    dead_letters = DeadLetterSink(settings.dead_letter_path)

    pool = create_pool(settings)
    try:

        def sink_factory(header):
            return PooledInsertSink(
                pool, config.table, header, acquire_timeout=settings.db_acquire_timeout_s
            )

        with profile_block(f"load:{config.table}") as stats:
            with open_source(
                csv_path, delimiter=settings.csv_delimiter, encoding=settings.csv_encoding
            ) as source:
                result = load_records(source, sink_factory, config, dead_letters=dead_letters)
    finally:
        pool.close()

    merged = _merge_result(result, stats)
    merged["data_path"] = str(csv_path)
    if settings.dead_letter_path is not None and merged.get("dead_lettered"):
        merged["dead_letter_path"] = str(settings.dead_letter_path)

    log.info(
        f"data_path={csv_path} total_data={merged['rows']} process_time={merged['duration_seconds']}s",
        extra={"inserted": merged["inserted"], "throughput_rps": merged["throughput_rows_per_sec"]},
    )

    if persist:
        _persist_results(
            {"timestamp": datetime.now(timezone.utc).isoformat(), "result": merged},
            Path(results_dir),
        )
    return merged


__all__ = ["FailurePolicy", "LoadConfig", "load_records", "run_load"]
