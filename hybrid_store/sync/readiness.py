"""One-shot readiness barrier.

Consumers call ``wait`` before serving reads. The gate opens once, when
the first sync cycle completes; after that ``wait`` returns at once.
Whether a failed first cycle opens the gate is the ReadyPolicy.
"""

import threading
import logging
from typing import Callable, Optional

from hybrid_store.config import ReadyPolicy

logger = logging.getLogger(__name__)


class ReadinessGate:
    """Barrier released by the first completed sync.

    Attributes:
        policy: FAIL_OPEN releases waiters after a failed first attempt,
            FAIL_CLOSED keeps them waiting for a successful one
        has_data: True once a sync has populated memory
    """

    def __init__(
        self,
        policy: ReadyPolicy = ReadyPolicy.FAIL_OPEN,
        trigger: Optional[Callable[[], object]] = None,
    ):
        """Initialize the gate.

        Args:
            policy: Behaviour after a failed first sync
            trigger: Runs a sync cycle; called in the background by the
                first waiter if no cycle has started yet
        """
        self.policy = policy
        self._trigger = trigger
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._triggered = False
        self._waiters = 0
        self.has_data = False

    @property
    def is_ready(self) -> bool:
        return self._event.is_set()

    @property
    def triggered(self) -> bool:
        return self._triggered

    def mark_triggered(self) -> None:
        """Record that a sync cycle has started."""
        with self._lock:
            self._triggered = True

    def clear_trigger(self) -> None:
        """Let the next waiter trigger a cycle again (the last one was skipped)."""
        with self._lock:
            if not self._event.is_set():
                self._triggered = False

    def kick(self) -> bool:
        """Start a background cycle for blocked waiters if none is in flight.

        Called when a skipped cycle could not settle the gate, e.g. once the
        write queue has drained.

        Returns:
            True if a cycle was started
        """
        with self._lock:
            start = (
                not self._event.is_set()
                and not self._triggered
                and self._waiters > 0
                and self._trigger is not None
            )
            if start:
                self._triggered = True
        if start:
            logger.debug("Re-triggering first sync for waiting consumers")
            self._start_trigger()
        return start

    def mark_ready(self) -> None:
        """A sync succeeded: memory holds remote data."""
        self.has_data = True
        self._release("first sync complete")

    def attempt_failed(self, reason: str) -> None:
        """A sync attempt completed without applying data."""
        if self._event.is_set():
            return
        if self.policy is ReadyPolicy.FAIL_OPEN:
            logger.warning(f"First sync failed ({reason}); releasing consumers without data")
            self._release("fail-open after failed sync")
        else:
            logger.warning(f"First sync failed ({reason}); consumers keep waiting")

    def _release(self, why: str) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
        logger.info(f"Store ready: {why}")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the gate opens.

        The first caller to arrive before any cycle started kicks one off
        in the background. All callers share the same event.

        Returns:
            True if ready, False if the timeout expired first
        """
        if self._event.is_set():
            return True

        with self._lock:
            start = not self._triggered and self._trigger is not None
            if start:
                self._triggered = True
            self._waiters += 1

        try:
            if start:
                self._start_trigger()
            return self._event.wait(timeout)
        finally:
            with self._lock:
                self._waiters -= 1

    @property
    def waiters(self) -> int:
        """Callers currently blocked in ``wait``."""
        with self._lock:
            return self._waiters

    def _start_trigger(self) -> None:
        threading.Thread(
            target=self._run_trigger, name="hybrid-store-initial-sync", daemon=True
        ).start()

    def _run_trigger(self) -> None:
        try:
            self._trigger()
        except Exception as e:
            logger.error(f"Initial sync trigger failed: {e}")
            self.attempt_failed(str(e))
