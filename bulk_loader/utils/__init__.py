"""
Utilities package for the parallel CSV bulk loader.

Exports shared helpers for logging, profiling, and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from bulk_loader.utils.logging import configure_logging, get_logger
from bulk_loader.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
