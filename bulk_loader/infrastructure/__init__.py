"""
Infrastructure package for the parallel CSV bulk loader.

Centralizes database connectivity concerns (DSN, pooling, the psycopg insert
sink). Keep this layer focused on I/O and resource management, decoupled from
the pipeline and orchestrator logic.
"""

from bulk_loader.infrastructure.db_factory import (
    build_dsn,
    check_connection,
    create_pool,
    get_sync_connection,
    mask_dsn,
)
from bulk_loader.infrastructure.sink import PooledInsertSink, build_insert_statement

__all__ = [
    "build_dsn",
    "check_connection",
    "create_pool",
    "get_sync_connection",
    "mask_dsn",
    "PooledInsertSink",
    "build_insert_statement",
]
