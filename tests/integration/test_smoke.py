"""
Integration tests for the parallel CSV bulk loader.

These tests run against a real PostgreSQL instance and verify that:
1. A generated file is loaded completely through the worker pool
2. Rows the database rejects are dead-lettered while the rest still load
3. A pool that cannot open connections fails the run instead of hanging

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os
from pathlib import Path

import psycopg
import pytest

from bulk_loader.config import Settings
from bulk_loader.errors import ConnectionAcquireError
from bulk_loader.infrastructure.db_factory import check_connection
from bulk_loader.orchestrator import run_load
from scripts import generate_data

DEFAULT_ROWS = 500
DEFAULT_SEED = 123
DEFAULT_WORKERS = 4

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


def _count_rows(conn: psycopg.Connection) -> int:
    with conn.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM public.records;")
        return cur.fetchone()[0]


@pytest.fixture
def generated_csv(tmp_path: Path) -> Path:
    path = tmp_path / "records.csv"
    generate_data._generate_rows_csv(path, rows=DEFAULT_ROWS, batch_size=100, seed=DEFAULT_SEED)
    return path


class TestConnectivity:
    def test_check_connection_reports_version(self, test_dsn: str, db_connection_available: bool):
        if not db_connection_available:
            pytest.skip("Database not available for integration tests")
        assert "PostgreSQL" in check_connection(test_dsn)


class TestLoad:
    def test_generated_file_loads_completely(
        self,
        clean_records_table,
        db_connection: psycopg.Connection,
        test_settings: Settings,
        generated_csv: Path,
    ):
        settings = test_settings.model_copy(update={"total_worker": DEFAULT_WORKERS})

        result = run_load(generated_csv, settings)

        assert result["rows"] == DEFAULT_ROWS
        assert result["inserted"] == DEFAULT_ROWS
        assert result["dead_lettered"] == 0
        assert result.get("error") is None
        assert _count_rows(db_connection) == DEFAULT_ROWS

    def test_duplicates_are_dead_lettered(
        self,
        clean_records_table,
        db_connection: psycopg.Connection,
        test_settings: Settings,
        tmp_path: Path,
    ):
        path = tmp_path / "dupes.csv"
        path.write_text(
            "external_id,category,payload,amount,is_active,created_at\n"
            '1,alpha,"{""a"": 1}",10.00,t,2024-01-01T00:00:00+00:00\n'
            '2,beta,"{""a"": 2}",20.00,f,2024-01-02T00:00:00+00:00\n'
            '1,gamma,"{""a"": 3}",30.00,t,2024-01-03T00:00:00+00:00\n',
            encoding="utf-8",
        )
        dead_letter_path = tmp_path / "errors.csv"
        settings = test_settings.model_copy(
            update={"total_worker": 1, "dead_letter_path": dead_letter_path}
        )

        result = run_load(path, settings)

        assert result["inserted"] == 2
        assert result["dead_lettered"] == 1
        assert _count_rows(db_connection) == 2
        assert "duplicate key" in dead_letter_path.read_text(encoding="utf-8")

    def test_unreachable_database_fails_fast(self, test_settings: Settings, generated_csv: Path):
        settings = test_settings.model_copy(
            update={"db_port": 1, "db_connect_timeout_s": 1, "db_max_idle_conns": 1}
        )

        with pytest.raises(ConnectionAcquireError):
            run_load(generated_csv, settings)
