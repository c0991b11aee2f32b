from __future__ import annotations

from typing import Optional, Tuple

import psycopg
from psycopg import sql
from psycopg_pool import ConnectionPool, PoolClosed, PoolTimeout

from bulk_loader.domain.models import Header, Record
from bulk_loader.errors import ConnectionAcquireError, InsertError

# Failures that retrying the same values cannot fix.
PERMANENT_ERRORS: Tuple[type[psycopg.Error], ...] = (
    psycopg.IntegrityError,
    psycopg.DataError,
    psycopg.ProgrammingError,
    psycopg.NotSupportedError,
)


def build_insert_statement(table: str, header: Header) -> sql.Composed:
    """
    Compose `INSERT INTO <table> (<cols>) VALUES (%s, ...)` with quoted identifiers.

    `table` may be schema-qualified (`schema.table`).
    """
    parts = [part for part in table.split(".") if part]
    if not parts:
        raise ValueError("table name must not be empty")
    return sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
        table=sql.Identifier(*parts),
        columns=sql.SQL(", ").join(sql.Identifier(name) for name in header.columns),
        values=sql.SQL(", ").join(sql.Placeholder() * len(header)),
    )


class PooledInsertSink:
    """
    Single-row inserts over a psycopg ConnectionPool.

    One connection is borrowed per insert attempt and returned right after it,
    whether the statement succeeded or not, so no worker holds a connection
    across retries.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        table: str,
        header: Header,
        acquire_timeout: Optional[float] = None,
    ) -> None:
        self._pool = pool
        self.table = table
        self.header = header
        self._acquire_timeout = acquire_timeout
        self.statement = build_insert_statement(table, header)

    def insert(self, record: Record) -> None:
        try:
            conn = self._pool.getconn(timeout=self._acquire_timeout)
        except (PoolTimeout, PoolClosed) as exc:
            raise ConnectionAcquireError(f"Could not acquire a connection: {exc}") from exc

        try:
            with conn.cursor() as cur:
                cur.execute(self.statement, record.values)
        except psycopg.Error as exc:
            raise InsertError(
                f"Insert of line {record.line_number} into {self.table} failed: {exc}",
                permanent=isinstance(exc, PERMANENT_ERRORS),
            ) from exc
        finally:
            self._pool.putconn(conn)


__all__ = ["PERMANENT_ERRORS", "PooledInsertSink", "build_insert_statement"]
