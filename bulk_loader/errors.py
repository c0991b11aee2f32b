"""
Exception hierarchy for the parallel CSV bulk loader.

Errors are grouped by how the pipeline reacts to them:

- SourceReadError: the record stream failed; production stops, dispatched
  records still drain.
- InsertError: a single statement failed; handled by the retry policy and,
  when the policy gives up, by the dead-letter sink.
- FatalLoadError: the database handle itself is unusable; the whole run aborts
  and the error propagates to the orchestrator.
"""

from __future__ import annotations

from typing import Optional


class LoaderError(Exception):
    """Base class for all loader errors."""


class ConfigError(LoaderError):
    """Configuration file could not be read or validated."""


class SourceReadError(LoaderError):
    """The record source could not produce the next row."""

    def __init__(self, message: str, line_number: Optional[int] = None) -> None:
        super().__init__(message)
        self.line_number = line_number


class EmptySourceError(SourceReadError):
    """The source ended before a header row was read."""


class HeaderError(SourceReadError):
    """The header row is not a usable column list."""


class InsertError(LoaderError):
    """
    A single-row insert failed while executing the statement.

    `permanent` marks failures that will not go away by retrying the same
    values (constraint violations, bad data, arity mismatches).
    """

    def __init__(self, message: str, permanent: bool = False) -> None:
        super().__init__(message)
        self.permanent = permanent


class FatalLoadError(LoaderError):
    """An unrecoverable condition that aborts the whole run."""


class ConnectionAcquireError(FatalLoadError):
    """A connection could not be borrowed from the pool."""


__all__ = [
    "LoaderError",
    "ConfigError",
    "SourceReadError",
    "EmptySourceError",
    "HeaderError",
    "InsertError",
    "FatalLoadError",
    "ConnectionAcquireError",
]
