"""Hybrid Store - memory-first mirror of a slow remote record store.

Keeps every collection of a rate-limited remote store (a spreadsheet, a
directory of CSV files, ...) in memory for fast reads, applies writes to
memory immediately and replays them to the remote store in the background.

Key Features:
    - Read-your-writes: mutations are visible as soon as the call returns
    - Single-worker write-behind queue, strict FIFO, rate limited
    - Periodic bulk refresh that never clobbers unflushed writes
    - Readiness gate for the first sync (fail-open or fail-closed)
    - Pluggable backends (memory, CSV directory, Google Sheets)

Quick Start:
    from hybrid_store import HybridStore, EngineConfig
    from hybrid_store.backends import get_backend

    store = HybridStore(get_backend("csv", data_dir="./data"), EngineConfig())
    store.start()
    store.await_ready()

    store.enqueue_add("Tasks", {"TaskID": "T1", "Status": "Pending"})
    store.enqueue_update("Tasks", "TaskID", "T1", {"Status": "Completed"})
    print(store.list("Tasks"))

    store.stop()  # flushes pending writes

Classes:
    HybridStore: Main interface
    EngineConfig: Operational parameters
    CollectionSchema: Declared collection shape
    Job: Immutable mutation request
    ReadyPolicy: Readiness gate behaviour after a failed first sync
"""

__version__ = "1.0.0"
__license__ = "MIT"

# Core configuration classes
from .config import (
    CollectionSchema,
    DEFAULT_COLLECTIONS,
    EngineConfig,
    JobKind,
    ReadyPolicy,
    load_config,
)

from .errors import (
    CollectionNotFound,
    HybridStoreError,
    JobApplyFailure,
    RemoteStoreError,
    SyncReadFailure,
    UnknownCollectionError,
)
from .jobs import Job
from .memory import InMemoryStore

# Main store class
from .store import HybridStore

# Backend base class (for extension)
from .backends import RemoteStore, get_backend

# Sync components
from .sync import ReadinessGate, SyncEngine, SyncStats, WriteQueue

# Public API
__all__ = [
    "__version__",
    "__license__",
    "HybridStore",
    "EngineConfig",
    "CollectionSchema",
    "DEFAULT_COLLECTIONS",
    "JobKind",
    "ReadyPolicy",
    "load_config",
    "Job",
    "InMemoryStore",
    "RemoteStore",
    "get_backend",
    "ReadinessGate",
    "SyncEngine",
    "SyncStats",
    "WriteQueue",
    "HybridStoreError",
    "RemoteStoreError",
    "SyncReadFailure",
    "JobApplyFailure",
    "CollectionNotFound",
    "UnknownCollectionError",
    "create_store",
]


def create_store(
    backend: str = "memory",
    config: EngineConfig = None,
    **backend_kwargs,
) -> HybridStore:
    """Convenience function to create a HybridStore on a named backend.

    Args:
        backend: Backend name ("memory", "csv" or "sheets")
        config: Engine configuration (defaults if None)
        **backend_kwargs: Passed to the backend constructor

    Example:
        store = create_store("csv", data_dir="./data")
    """
    return HybridStore(get_backend(backend, **backend_kwargs), config)
