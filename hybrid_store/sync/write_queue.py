"""Write-behind queue for the hybrid store.

Philosophy: MEMORY ANSWERS NOW, REMOTE CATCHES UP.

Jobs are replayed to the remote store strictly in enqueue order by a
single worker thread, one remote operation per ``delay`` seconds. A job
that fails is logged and dropped; the caller already got its answer from
memory.
"""

import threading
import time
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, Mapping, Optional

from hybrid_store.backends.base import RemoteStore
from hybrid_store.config import CollectionSchema, JobKind
from hybrid_store.errors import JobApplyFailure, UnknownCollectionError
from hybrid_store.jobs import Job

logger = logging.getLogger(__name__)


class QueueState(Enum):
    """Worker state of the write queue."""
    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class QueueStats:
    """Counters for jobs seen by the write queue."""

    enqueued: int = 0
    applied: int = 0
    unmatched: int = 0  # update/delete found no remote row
    failed: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enqueued": self.enqueued,
            "applied": self.applied,
            "unmatched": self.unmatched,
            "failed": self.failed,
            "last_error": self.last_error,
        }


class WriteQueue:
    """FIFO of pending remote mutations drained by one worker thread.

    At most one worker exists at a time. ``enqueue`` starts it when the
    queue is idle and returns immediately; the worker exits once the queue
    is empty.

    Attributes:
        store: Remote store the jobs are replayed against
        delay: Seconds to sleep after each remote operation
        on_failure: Callback when a job fails (receives job, error)
        on_idle: Callback when the worker finds the queue empty and exits
    """

    def __init__(
        self,
        store: RemoteStore,
        schemas: Mapping[str, CollectionSchema],
        delay: float = 0.3,
        on_failure: Optional[Callable[[Job, Exception], None]] = None,
        on_idle: Optional[Callable[[], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the write queue.

        Args:
            store: Remote store to write to
            schemas: Declared schemas by collection name
            delay: Fixed pause after every job
            on_failure: Called when a job could not be applied
            on_idle: Called by the worker after the queue drains
            sleep: Sleep function used for the pause
        """
        self.store = store
        self.schemas = dict(schemas)
        self.delay = delay
        self.on_failure = on_failure
        self.on_idle = on_idle
        self._sleep = sleep

        self._cond = threading.Condition(threading.Lock())
        self._jobs: Deque[Job] = deque()
        self._state = QueueState.IDLE
        self._current: Optional[Job] = None
        self._seq = 0
        self.stats = QueueStats()

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def is_busy(self) -> bool:
        """True while a worker is draining."""
        with self._cond:
            return self._state is QueueState.DRAINING

    @property
    def pending(self) -> int:
        """Jobs not yet finished, including the one in progress."""
        with self._cond:
            return len(self._jobs) + (1 if self._current else 0)

    @property
    def enqueued_total(self) -> int:
        """Monotonic count of jobs ever enqueued."""
        with self._cond:
            return self._seq

    def enqueue(self, job: Job) -> Job:
        """Append a job and make sure a worker is draining.

        Returns:
            The job as queued, stamped with its sequence number
        """
        with self._cond:
            self._seq += 1
            job = job.with_seq(self._seq)
            self._jobs.append(job)
            self.stats.enqueued += 1
            start_worker = self._state is QueueState.IDLE
            if start_worker:
                self._state = QueueState.DRAINING

        logger.debug(f"Queued #{job.seq}: {job.describe()}", extra=job.log_extra())
        if start_worker:
            worker = threading.Thread(
                target=self._drain, name="hybrid-store-writer", daemon=True
            )
            worker.start()
        return job

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until the queue is idle.

        Returns:
            True if the queue drained, False on timeout
        """
        with self._cond:
            return self._cond.wait_for(
                lambda: self._state is QueueState.IDLE, timeout=timeout
            )

    def _drain(self) -> None:
        try:
            while True:
                with self._cond:
                    if not self._jobs:
                        self._state = QueueState.IDLE
                        self._cond.notify_all()
                        break
                    job = self._jobs.popleft()
                    self._current = job
                try:
                    self._process(job)
                finally:
                    with self._cond:
                        self._current = None
        except BaseException:
            with self._cond:
                self._state = QueueState.IDLE
                self._cond.notify_all()
            raise

        if self.on_idle:
            try:
                self.on_idle()
            except Exception as e:
                logger.error(f"on_idle callback error: {e}")

    def _process(self, job: Job) -> None:
        """Apply one job remotely, then pause."""
        try:
            schema = self.schemas.get(job.collection)
            if schema is None:
                raise UnknownCollectionError(job.collection)

            logger.info(f"Writing #{job.seq}: {job.describe()}", extra=job.log_extra())
            self.store.ensure_collection(schema)

            if job.kind is JobKind.ADD:
                applied = self.store.apply_add(schema, dict(job.payload))
            elif job.kind is JobKind.UPDATE:
                applied = self.store.apply_update(
                    schema, job.key_field, job.key_value, dict(job.payload)
                )
            else:
                applied = self.store.apply_delete(schema, job.key_field, job.key_value)

            with self._cond:
                if applied:
                    self.stats.applied += 1
                else:
                    self.stats.unmatched += 1
            if not applied:
                logger.info(
                    f"No remote row matched #{job.seq}: {job.describe()}",
                    extra=job.log_extra(),
                )

        except Exception as e:
            failure = JobApplyFailure(job, e)
            logger.error(f"Write failed #{job.seq}: {failure}", extra=job.log_extra())
            with self._cond:
                self.stats.failed += 1
                self.stats.last_error = str(failure)
            if self.on_failure:
                try:
                    self.on_failure(job, e)
                except Exception as cb_error:
                    logger.error(f"on_failure callback error: {cb_error}")

        if self.delay > 0:
            self._sleep(self.delay)

    def status(self) -> Dict[str, Any]:
        """Snapshot of queue state for reporting."""
        with self._cond:
            return {
                "state": self._state.value,
                "pending": len(self._jobs) + (1 if self._current else 0),
                "current": self._current.describe() if self._current else None,
                "delay": self.delay,
                "stats": self.stats.to_dict(),
            }
