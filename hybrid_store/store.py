"""HybridStore - the service object consumers talk to.

Reads come from memory. Mutations update memory synchronously, then queue
a job that a background worker replays to the remote store. A timer
thread periodically refreshes memory from the remote store in bulk.

Example:
    from hybrid_store import HybridStore, EngineConfig
    from hybrid_store.backends import get_backend

    store = HybridStore(get_backend("csv", data_dir="./data"), EngineConfig())
    store.start()
    store.await_ready()

    store.enqueue_add("Tasks", {"TaskID": "T1", "Status": "Pending"})
    store.list("Tasks")  # already contains T1
    store.stop()
"""

from __future__ import annotations

import atexit
import logging
import threading
from typing import Any, Dict, List, Optional

from .backends.base import RemoteStore
from .config import CollectionSchema, EngineConfig
from .errors import UnknownCollectionError
from .jobs import Job
from .memory import InMemoryStore, Record
from .sync.engine import SyncEngine, SyncScheduler, SyncStats
from .sync.readiness import ReadinessGate
from .sync.write_queue import WriteQueue
from .utils.logging import get_logger


logger = logging.getLogger(__name__)


class HybridStore:
    """Write-behind, memory-first mirror of a remote record store.

    Guarantees:
    - Read-your-writes: a mutation is visible to ``list`` as soon as the
      call returns.
    - Remote writes happen in enqueue order, one at a time.
    - A bulk refresh never overwrites writes that are still queued.

    Remote persistence is best effort: failed jobs are logged and dropped,
    and the next successful sync brings memory back in line.

    Attributes:
        config: Engine configuration
        remote: Remote store backend
        memory: In-memory store (read path)
        queue: Write-behind queue
        gate: Readiness gate
        sync_engine: Bulk refresh engine
        scheduler: Periodic sync timer
    """

    def __init__(self, remote: RemoteStore, config: Optional[EngineConfig] = None):
        """Initialize the store. Nothing runs until ``start`` or ``await_ready``.

        Raises:
            ValueError: If the configuration is invalid
        """
        self.config = config or EngineConfig()
        error = self.config.validate()
        if error:
            raise ValueError(f"Invalid config: {error}")

        self._setup_logging()

        self._schemas: Dict[str, CollectionSchema] = {
            s.name: s for s in self.config.collections
        }
        self.remote = remote
        self.remote.ensure_retry_delay = self.config.ensure_retry_delay

        # Held while mutating memory + enqueueing, and while the sync engine
        # checks the queue and swaps the snapshot
        self._lock = threading.RLock()

        self.memory = InMemoryStore(self._schemas)
        self.queue = WriteQueue(
            remote,
            self._schemas,
            delay=self.config.write_delay,
            on_idle=self._on_queue_idle,
        )
        self.gate = ReadinessGate(self.config.ready_policy, trigger=self.run_sync_cycle)
        self.sync_engine = SyncEngine(
            remote,
            self.memory,
            self.queue,
            self.config.collections,
            gate=self.gate,
            lock=self._lock,
        )
        self.scheduler = SyncScheduler(self.sync_engine, self.config.sync_interval)
        self._shutdown_registered = False

        logger.info(
            f"HybridStore initialized: {len(self._schemas)} collections on {remote.describe()}"
        )

    def _setup_logging(self) -> None:
        """Attach a file handler to the package logger if configured."""
        if self.config.log_file:
            get_logger(
                "hybrid_store",
                level=self.config.log_level,
                json_output=self.config.json_logs,
                log_file=self.config.log_file,
                console=False,
            )

    def _schema(self, collection: str) -> CollectionSchema:
        try:
            return self._schemas[collection]
        except KeyError:
            raise UnknownCollectionError(collection) from None

    @staticmethod
    def _clean(values: Dict[str, Any]) -> Record:
        return {str(k): "" if v is None else str(v) for k, v in values.items()}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Run a sync now and then every ``sync_interval`` seconds."""
        self._register_shutdown_handler()
        self.scheduler.start(eager=True)

    def stop(self, flush: bool = True, timeout: Optional[float] = None) -> bool:
        """Stop periodic syncs and optionally wait for queued writes.

        Returns:
            True if the queue is idle on return
        """
        self.scheduler.stop(timeout)
        if flush:
            return self.queue.flush(timeout)
        return not self.queue.is_busy

    def _register_shutdown_handler(self) -> None:
        if not self._shutdown_registered:
            atexit.register(self._on_shutdown)
            self._shutdown_registered = True
            logger.debug("Shutdown handler registered")

    def _on_shutdown(self) -> None:
        """Flush pending writes on interpreter exit (bounded)."""
        pending = self.queue.pending
        logger.info(f"HybridStore shutdown initiated ({pending} jobs pending)")
        if not self.stop(flush=True, timeout=self.config.shutdown_timeout):
            logger.error(
                f"Shutdown timed out with {self.queue.pending} jobs not written"
            )
        logger.info("HybridStore shutdown complete")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def await_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for the first sync; triggers one if none has started.

        Returns:
            True if ready, False on timeout
        """
        return self.gate.wait(timeout)

    def list(self, collection: str) -> List[Record]:
        """Current records of a collection, in insertion order."""
        return self.memory.list(collection)

    def find(self, collection: str, key_value: str, key_field: Optional[str] = None) -> Optional[Record]:
        """First record whose key field equals key_value, or None."""
        key_field = key_field or self._schema(collection).key_field
        return self.memory.find(collection, key_field, key_value)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enqueue_add(self, collection: str, record: Dict[str, Any]) -> Job:
        """Insert a record in memory and queue the remote append.

        Raises:
            UnknownCollectionError: If the collection is not configured
            ValueError: If the record has no key value
        """
        schema = self._schema(collection)
        record = self._clean(record)
        if not record.get(schema.key_field):
            raise ValueError(f"Record for {collection} is missing {schema.key_field}")

        with self._lock:
            self.memory.insert(collection, record)
            return self.queue.enqueue(Job.add(collection, record))

    def enqueue_update(
        self,
        collection: str,
        key_field: Optional[str],
        key_value: str,
        patch: Dict[str, Any],
    ) -> Optional[Job]:
        """Patch the first matching record in memory and queue the remote update.

        Returns:
            The queued job, or None if the key was absent and
            ``enqueue_absent_keys`` is off
        """
        key_field = key_field or self._schema(collection).key_field
        patch = self._clean(patch)

        with self._lock:
            found = self.memory.patch(collection, key_field, key_value, patch)
            if not found:
                logger.debug(f"Update on absent key {collection}[{key_field}={key_value}]")
                if not self.config.enqueue_absent_keys:
                    return None
            return self.queue.enqueue(Job.update(collection, key_field, key_value, patch))

    def enqueue_delete(
        self,
        collection: str,
        key_field: Optional[str],
        key_value: str,
    ) -> Optional[Job]:
        """Remove matching records from memory and queue the remote delete.

        Returns:
            The queued job, or None if the key was absent and
            ``enqueue_absent_keys`` is off
        """
        key_field = key_field or self._schema(collection).key_field

        with self._lock:
            removed = self.memory.remove(collection, key_field, key_value)
            if not removed:
                logger.debug(f"Delete on absent key {collection}[{key_field}={key_value}]")
                if not self.config.enqueue_absent_keys:
                    return None
            return self.queue.enqueue(Job.delete(collection, key_field, key_value))

    # ------------------------------------------------------------------
    # Sync & status
    # ------------------------------------------------------------------

    def run_sync_cycle(self) -> SyncStats:
        """Run one bulk sync now (skipped if busy)."""
        return self.sync_engine.run_sync_cycle()

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for all queued writes to reach the remote store."""
        return self.queue.flush(timeout)

    def _on_queue_idle(self) -> None:
        # A first sync skipped while the queue was busy can run now
        self.gate.kick()

    def status(self) -> Dict[str, Any]:
        """Get status of the store."""
        return {
            "remote": self.remote.describe(),
            "ready": self.gate.is_ready,
            "has_data": self.gate.has_data,
            "ready_policy": self.config.ready_policy.value,
            "scheduler_running": self.scheduler.running,
            "sync_interval": self.config.sync_interval,
            "collections": self.memory.counts(),
            "queue": self.queue.status(),
            "sync": self.sync_engine.get_sync_status(),
        }

    @property
    def schemas(self) -> Dict[str, CollectionSchema]:
        """Declared schemas by collection name."""
        return dict(self._schemas)
