"""
Database connection factory utilities for the parallel CSV bulk loader.

Builds the DSN from settings, creates the bounded psycopg connection pool that
workers borrow from, and provides a retried one-off connection used to verify
connectivity before a load starts.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import Connection
from psycopg.conninfo import conninfo_to_dict, make_conninfo
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from bulk_loader.config import Settings, get_settings
from bulk_loader.errors import ConnectionAcquireError
from bulk_loader.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a libpq connection string from settings."""
    settings = settings or get_settings()
    return make_conninfo(
        host=settings.db_host,
        port=settings.db_port,
        user=settings.db_user,
        password=settings.db_password,
        dbname=settings.db_name,
        connect_timeout=settings.db_connect_timeout_s,
        application_name="bulk_loader",
    )


def mask_dsn(dsn: str) -> str:
    """Return the DSN with the password replaced, safe for logs."""
    params = conninfo_to_dict(dsn)
    if params.get("password"):
        params["password"] = "***"
    return make_conninfo(**params)


def create_pool(settings: Optional[Settings] = None, dsn: Optional[str] = None) -> ConnectionPool:
    """
    Create the shared connection pool for a load run.

    The pool keeps `db_max_idle_conns` connections warm and never opens more
    than `db_max_open_conns`. Connections run in autocommit so every insert is
    committed on its own.

    Raises
    ------
    ConnectionAcquireError
        If the warm connections cannot be opened within the connect timeout.
    """
    settings = settings or get_settings()
    conninfo = dsn or build_dsn(settings)
    pool = ConnectionPool(
        conninfo=conninfo,
        min_size=settings.db_max_idle_conns,
        max_size=settings.db_max_open_conns,
        timeout=settings.db_acquire_timeout_s,
        kwargs={"autocommit": True},
        name="bulk_loader",
        open=True,
    )
    if settings.db_max_idle_conns > 0:
        try:
            pool.wait(timeout=float(settings.db_connect_timeout_s))
        except PoolTimeout as exc:
            pool.close()
            raise ConnectionAcquireError(
                f"Could not open {settings.db_max_idle_conns} connection(s) to {mask_dsn(conninfo)}"
            ) from exc
    log.info(
        "Connection pool ready",
        extra={
            "dsn": mask_dsn(conninfo),
            "min_size": settings.db_max_idle_conns,
            "max_size": settings.db_max_open_conns,
        },
    )
    return pool


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for simple, one-off operations. Workers use the pool instead.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn(), autocommit=True)


def check_connection(dsn: Optional[str] = None) -> str:
    """
    Verify the database is reachable and return the server version string.
    """
    with get_sync_connection(dsn) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT version();")
            row = cur.fetchone()
    return row[0] if row else ""


__all__ = [
    "build_dsn",
    "check_connection",
    "create_pool",
    "get_sync_connection",
    "mask_dsn",
]
