"""
Parallel CSV Bulk Loader - load delimited files into PostgreSQL with a pool of
insert workers.

A single reader parses the file and hands records, one at a time, to a fixed
pool of worker threads through an unbuffered channel. Each worker inserts its
record over a shared, bounded connection pool with a per-record retry policy,
and a completion barrier tells the caller when every dispatched record has
been settled.

The package is organised in layers:

- `bulk_loader.source`: sequential record source (header, then records)
- `bulk_loader.pipeline`: channel, barrier, retry policy, workers, dead letters
- `bulk_loader.infrastructure`: psycopg pool and insert sink
- `bulk_loader.orchestrator`: wiring, profiling and reporting of a load run
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from bulk_loader.config import Settings, get_settings, load_config_file
from bulk_loader.domain.models import Header, LoadResult, Record
from bulk_loader.errors import (
    ConnectionAcquireError,
    FatalLoadError,
    InsertError,
    LoaderError,
    SourceReadError,
)
from bulk_loader.orchestrator import LoadConfig, load_records, run_load
from bulk_loader.pipeline import (
    CompletionBarrier,
    DeadLetterSink,
    HandoffChannel,
    RetryPolicy,
    WorkerPool,
)
from bulk_loader.source import RecordSource, open_source
from bulk_loader.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    "load_config_file",
    # Domain
    "Header",
    "LoadResult",
    "Record",
    # Errors
    "ConnectionAcquireError",
    "FatalLoadError",
    "InsertError",
    "LoaderError",
    "SourceReadError",
    # Orchestration
    "LoadConfig",
    "load_records",
    "run_load",
    # Pipeline
    "CompletionBarrier",
    "DeadLetterSink",
    "HandoffChannel",
    "RetryPolicy",
    "WorkerPool",
    # Source
    "RecordSource",
    "open_source",
    # Logging
    "configure_logging",
    "get_logger",
]
