"""
Domain models for the parallel CSV bulk loader.

`Header` is validated once when the first row is read and is shared read-only
by every worker afterwards. `Record` is the unit of work handed from the source
to exactly one worker. `LoadResult` is the summary contract returned by the
orchestrator and consumed by the reporter and CLI.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, TypedDict

from pydantic import BaseModel, Field, field_validator

_BOM = "\ufeff"


class Header(BaseModel):
    """
    Ordered column names taken from the first row of the source.
    """

    columns: Tuple[str, ...] = Field(..., min_length=1, description="Target column names.")

    model_config = {
        "frozen": True,
    }

    @field_validator("columns", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> Tuple[str, ...]:
        return tuple(str(name).replace(_BOM, "").strip() for name in value)

    @field_validator("columns")
    @classmethod
    def _check_names(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if any(not name for name in value):
            raise ValueError("header contains a blank column name")
        duplicates = sorted({name for name in value if value.count(name) > 1})
        if duplicates:
            raise ValueError(f"header contains duplicate columns: {', '.join(duplicates)}")
        return value

    def __len__(self) -> int:
        return len(self.columns)


@dataclass(frozen=True)
class Record:
    """One data row: raw text fields aligned with the header by position."""

    line_number: int
    values: Tuple[str, ...]


class LoadResult(TypedDict, total=False):
    """
    Summary of one load run.

    `rows` counts records dispatched to workers; `inserted` and `dead_lettered`
    split them by outcome. Fields are optional so partial runs (fatal abort,
    tolerant failure policy) can still be reported.
    """

    table: str
    rows: int
    inserted: int
    dead_lettered: int
    retries: int
    workers: int
    duration_seconds: float
    throughput_rows_per_sec: float
    peak_rss_bytes: Optional[int]
    cpu_percent: Optional[float]
    source_error: Optional[str]
    error: Optional[str]
    notes: Optional[str]
    extra: Dict[str, Any]


__all__ = ["Header", "Record", "LoadResult"]
