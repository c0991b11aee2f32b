"""
Domain package for the parallel CSV bulk loader.

Exports the data definitions shared by the source, the pipeline and the
orchestrator. Keep this package free of I/O and threading concerns.
"""

from bulk_loader.domain.models import Header, LoadResult, Record

__all__ = [
    "Header",
    "LoadResult",
    "Record",
]
