"""Sync engine for the hybrid store.

Philosophy: REMOTE IS TRUTH, MEMORY IS CACHE, UNFLUSHED WRITES WIN.

A sync cycle reads every collection from the remote store in one batch
and replaces the in-memory snapshot wholesale. It is skipped, not
deferred, while another cycle runs or the write queue is draining. If a
job was queued while the bulk read was in flight, the snapshot is stale
with respect to memory and is discarded.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import logging

from hybrid_store.backends.base import RemoteStore
from hybrid_store.config import CollectionSchema
from hybrid_store.memory import InMemoryStore
from hybrid_store.sync.readiness import ReadinessGate
from hybrid_store.sync.write_queue import WriteQueue
from hybrid_store.utils.hashing import compare_hashes, hash_snapshot

logger = logging.getLogger(__name__)


@dataclass
class SyncStats:
    """Statistics from a sync cycle."""

    success: bool = True
    skipped: bool = False
    skip_reason: Optional[str] = None
    stale: bool = False  # snapshot read but discarded

    # Record counts per collection in the snapshot
    records: Dict[str, int] = field(default_factory=dict)
    collections_changed: List[str] = field(default_factory=list)
    collections_unchanged: List[str] = field(default_factory=list)

    # Timing
    started_at: float = 0.0
    completed_at: float = 0.0
    duration_ms: float = 0.0

    # Errors
    errors: List[str] = field(default_factory=list)

    @property
    def applied(self) -> bool:
        """True if the snapshot replaced memory."""
        return self.success and not self.skipped and not self.stale

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "success": self.success,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "stale": self.stale,
            "applied": self.applied,
            "records": dict(self.records),
            "collections_changed": list(self.collections_changed),
            "collections_unchanged": list(self.collections_unchanged),
            "duration_ms": self.duration_ms,
            "errors": list(self.errors),
        }


class SyncEngine:
    """Bulk refresh of the in-memory store from the remote store.

    Attributes:
        store: Remote store read in bulk
        memory: In-memory store whose collections get replaced
        queue: Write queue; a busy queue blocks the cycle
        gate: Readiness gate released by the first completed cycle
        lock: Coordination lock shared with the mutation path
    """

    def __init__(
        self,
        store: RemoteStore,
        memory: InMemoryStore,
        queue: WriteQueue,
        schemas: Sequence[CollectionSchema],
        gate: Optional[ReadinessGate] = None,
        lock: Optional[threading.RLock] = None,
    ):
        """Initialize sync engine.

        Args:
            store: Remote store
            memory: In-memory store
            queue: Write queue checked before and after the bulk read
            schemas: Collections to read
            gate: Optional readiness gate
            lock: Lock also held by writers while they mutate memory and
                enqueue; a private one is created if omitted
        """
        self.store = store
        self.memory = memory
        self.queue = queue
        self.schemas = list(schemas)
        self.gate = gate
        self.lock = lock or threading.RLock()

        self._syncing = False
        self._digests: Dict[str, str] = {}
        self.last_stats: Optional[SyncStats] = None
        self.last_success_at: Optional[float] = None
        self.cycles_run = 0
        self.cycles_skipped = 0

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def run_sync_cycle(self) -> SyncStats:
        """Run one bulk sync, or skip it if the store is busy.

        Returns:
            SyncStats describing what happened
        """
        stats = SyncStats(started_at=time.time())
        rearm = False

        with self.lock:
            if self._syncing:
                reason = "sync already running"
            elif self.queue.is_busy:
                reason = "write queue is draining"
            else:
                reason = None
                self._syncing = True
                generation = self.queue.enqueued_total
            if reason:
                self.cycles_skipped += 1
            else:
                self.cycles_run += 1

        if reason:
            logger.info(f"Skipping sync: {reason}")
            stats.skipped = True
            stats.skip_reason = reason
            # A running cycle settles the gate itself; a busy queue does not
            if reason != "sync already running":
                self._rearm_gate()
            return self._finalize_stats(stats)

        if self.gate:
            self.gate.mark_triggered()

        try:
            snapshot = self.store.bulk_read(self.schemas)
            stats.records = {name: len(records) for name, records in snapshot.items()}

            with self.lock:
                if self.queue.is_busy or self.queue.enqueued_total != generation:
                    stats.stale = True
                else:
                    digests = hash_snapshot(snapshot)
                    diff = compare_hashes(digests, self._digests)
                    stats.collections_changed = diff["added"] + diff["modified"]
                    stats.collections_unchanged = diff["unchanged"]
                    self.memory.replace_all(snapshot)
                    self._digests = digests

            if stats.stale:
                logger.info("Discarding snapshot: writes were queued during the bulk read")
                if self.gate:
                    self.gate.attempt_failed("snapshot discarded as stale")
                    rearm = True
            else:
                self.last_success_at = stats.started_at
                if self.gate:
                    self.gate.mark_ready()

        except Exception as e:
            stats.success = False
            stats.errors.append(str(e))
            logger.error(f"Sync error: {e}")
            if self.gate:
                self.gate.attempt_failed(str(e))
        finally:
            with self.lock:
                self._syncing = False

        if rearm:
            self._rearm_gate()
        return self._finalize_stats(stats)

    def _rearm_gate(self) -> None:
        """Let a cycle that settled nothing be retried for blocked waiters.

        The trigger is cleared so the next waiter starts a fresh cycle. If
        the queue is already idle the gate is kicked now; otherwise the
        queue kicks it when it drains.
        """
        if not self.gate:
            return
        self.gate.clear_trigger()
        if not self.queue.is_busy:
            self.gate.kick()

    def _finalize_stats(self, stats: SyncStats) -> SyncStats:
        """Finalize stats with timing info and log the outcome."""
        stats.completed_at = time.time()
        stats.duration_ms = (stats.completed_at - stats.started_at) * 1000
        self.last_stats = stats

        if stats.applied:
            logger.info(
                f"Sync complete: {sum(stats.records.values())} records, "
                f"{len(stats.collections_changed)} collections changed, "
                f"{len(stats.collections_unchanged)} unchanged "
                f"in {stats.duration_ms:.1f}ms"
            )
        return stats

    def get_sync_status(self) -> Dict[str, Any]:
        """Get current sync status."""
        return {
            "syncing": self._syncing,
            "cycles_run": self.cycles_run,
            "cycles_skipped": self.cycles_skipped,
            "last_success_at": self.last_success_at,
            "last": self.last_stats.to_dict() if self.last_stats else None,
        }


class SyncScheduler:
    """Runs sync cycles on a daemon thread: once at start, then every interval."""

    def __init__(self, engine: SyncEngine, interval: float = 30.0):
        self.engine = engine
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, eager: bool = True) -> None:
        """Start the timer thread. No-op if already running."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, args=(eager,), name="hybrid-store-sync", daemon=True
        )
        self._thread.start()
        logger.debug(f"Sync scheduler started (every {self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the timer thread and wait for it to exit."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self, eager: bool) -> None:
        if eager:
            self._tick()
        while not self._stop.wait(self.interval):
            self._tick()

    def _tick(self) -> None:
        try:
            self.engine.run_sync_cycle()
        except Exception as e:
            logger.error(f"Scheduled sync crashed: {e}")
