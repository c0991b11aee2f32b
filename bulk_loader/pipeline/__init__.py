"""
Producer/worker pipeline for the parallel CSV bulk loader.

Re-exports the concurrency building blocks so callers can import them from
`bulk_loader.pipeline` directly.
"""

from bulk_loader.pipeline.barrier import CompletionBarrier
from bulk_loader.pipeline.channel import ChannelClosed, HandoffChannel
from bulk_loader.pipeline.dead_letter import DeadLetter, DeadLetterSink
from bulk_loader.pipeline.retry import RetryPolicy
from bulk_loader.pipeline.sink import InsertSink, SinkFactory
from bulk_loader.pipeline.workers import WorkerPool, WorkerStats, spawn_workers

__all__ = [
    # Synchronization
    "ChannelClosed",
    "CompletionBarrier",
    "HandoffChannel",
    # Workers
    "RetryPolicy",
    "WorkerPool",
    "WorkerStats",
    "spawn_workers",
    # Sinks
    "DeadLetter",
    "DeadLetterSink",
    "InsertSink",
    "SinkFactory",
]
