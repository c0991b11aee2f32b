"""
Pytest configuration for the parallel CSV bulk loader.

Provides fixtures for:
- In-memory record sources and fake insert sinks for pipeline tests
- A bounded runner so a pipeline bug fails the test instead of hanging it
- Database connection management for integration tests
"""

from __future__ import annotations

import io
import os
import threading
from pathlib import Path
from typing import Any, Callable, Generator, List, Optional

import psycopg
import pytest

from bulk_loader.config import Settings
from bulk_loader.domain.models import Record
from bulk_loader.errors import InsertError
from bulk_loader.source import RecordSource

PIPELINE_TIMEOUT_SECONDS = 10.0


class RecordingSink:
    """Always-succeeding sink that remembers which worker inserted what."""

    def __init__(self, delay: float = 0.0) -> None:
        self._lock = threading.Lock()
        self._delay = delay
        self.inserted: List[Record] = []
        self.workers: List[str] = []
        self.attempts = 0

    def insert(self, record: Record) -> None:
        with self._lock:
            self.attempts += 1
        if self._delay:
            threading.Event().wait(self._delay)
        with self._lock:
            self.inserted.append(record)
            self.workers.append(threading.current_thread().name)

    @property
    def values(self) -> List[tuple]:
        return [record.values for record in self.inserted]


class FlakySink(RecordingSink):
    """Fails the first `failures` attempts for the records on `lines`."""

    def __init__(self, lines: set[int], failures: int, permanent: bool = False) -> None:
        super().__init__()
        self.lines = lines
        self.failures = failures
        self.permanent = permanent
        self.failed: dict[int, int] = {}

    def insert(self, record: Record) -> None:
        with self._lock:
            seen = self.failed.get(record.line_number, 0)
            should_fail = record.line_number in self.lines and seen < self.failures
            if should_fail:
                self.failed[record.line_number] = seen + 1
        if should_fail:
            raise InsertError(f"simulated failure for line {record.line_number}", self.permanent)
        super().insert(record)


def make_csv(header: List[str], rows: List[List[str]]) -> str:
    lines = [",".join(header)] + [",".join(row) for row in rows]
    return "\n".join(lines) + "\n"


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def slow_sink() -> RecordingSink:
    """Sink that takes 10ms per insert, for runs that must still be in flight."""
    return RecordingSink(delay=0.01)


@pytest.fixture
def flaky_sink() -> Callable[..., FlakySink]:
    """Factory for FlakySink(lines, failures, permanent=False)."""
    return FlakySink


@pytest.fixture
def csv_text() -> Callable[[List[str], List[List[str]]], str]:
    """Render a header and rows as comma-separated text."""
    return make_csv


@pytest.fixture
def source_from() -> Callable[[str], RecordSource]:
    """Build a RecordSource over an in-memory CSV string."""

    def _make(text: str, delimiter: str = ",") -> RecordSource:
        return RecordSource(io.StringIO(text, newline=""), delimiter=delimiter)

    return _make


@pytest.fixture
def run_bounded() -> Callable[..., Any]:
    """
    Run a callable in a helper thread and fail the test if it does not finish
    within PIPELINE_TIMEOUT_SECONDS. Exceptions are re-raised in the test.
    """

    def _run(func: Callable[..., Any], *args: Any, timeout: Optional[float] = None, **kwargs: Any):
        outcome: dict[str, Any] = {}

        def target() -> None:
            try:
                outcome["value"] = func(*args, **kwargs)
            except BaseException as exc:  # noqa: BLE001 - re-raised in the test thread
                outcome["error"] = exc

        thread = threading.Thread(target=target, name="bounded-runner", daemon=True)
        thread.start()
        thread.join(timeout or PIPELINE_TIMEOUT_SECONDS)
        if thread.is_alive():
            pytest.fail(f"{getattr(func, '__name__', func)} did not finish in time")
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")

    return _run


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "bulk_loader"),
        db_table="public.records",
        db_max_idle_conns=1,
        db_max_open_conns=4,
        total_worker=4,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the sample `records` table exists (db/init.sql).
    """
    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with db_connection.cursor() as cur:
        cur.execute(init_sql_path.read_text(encoding="utf-8"))
    return True


@pytest.fixture(scope="function")
def clean_records_table(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty the records table before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.records RESTART IDENTITY CASCADE;")
    yield
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.records RESTART IDENTITY CASCADE;")
