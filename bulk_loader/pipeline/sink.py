"""
Insert sink contract used by the worker pool.

The pool only needs "insert this one record, raise on failure". The production
implementation lives in `bulk_loader.infrastructure.sink`; tests use in-memory
fakes that satisfy the same protocol.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from bulk_loader.domain.models import Header, Record


@runtime_checkable
class InsertSink(Protocol):
    """
    Destination for single-record inserts.

    Implementations must be safe to call from several worker threads at once.
    """

    def insert(self, record: Record) -> None:
        """
        Insert one record.

        Raises
        ------
        InsertError
            The statement failed; the retry policy decides what happens next.
        FatalLoadError
            The underlying handle is unusable; the run is aborted.
        """
        ...


SinkFactory = Callable[[Header], InsertSink]


__all__ = ["InsertSink", "SinkFactory"]
