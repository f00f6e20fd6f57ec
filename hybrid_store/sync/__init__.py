"""Synchronization module for the hybrid store.

Philosophy: REMOTE IS TRUTH, MEMORY IS CACHE, UNFLUSHED WRITES WIN.

This module provides:
- WriteQueue: single-worker write-behind replay of mutations
- SyncEngine: bulk refresh of memory from the remote store
- SyncScheduler: periodic sync timer
- ReadinessGate: one-shot barrier released by the first sync

Write order: memory first (synchronous), remote second (queued).
Read order: memory only.
"""

from hybrid_store.sync.engine import SyncEngine, SyncScheduler, SyncStats
from hybrid_store.sync.readiness import ReadinessGate
from hybrid_store.sync.write_queue import QueueState, QueueStats, WriteQueue

__all__ = [
    "SyncEngine",
    "SyncScheduler",
    "SyncStats",
    "ReadinessGate",
    "QueueState",
    "QueueStats",
    "WriteQueue",
]
