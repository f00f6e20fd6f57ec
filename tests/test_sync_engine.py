"""Tests for hybrid_store.sync.engine module.

Covers the bulk refresh cycle, skip rules, stale snapshot handling,
change detection and the periodic scheduler.
"""

import threading
import time

import pytest

from hybrid_store.config import ReadyPolicy
from hybrid_store.errors import RemoteStoreError
from hybrid_store.jobs import Job
from hybrid_store.memory import InMemoryStore
from hybrid_store.sync.engine import SyncEngine, SyncScheduler, SyncStats
from hybrid_store.sync.readiness import ReadinessGate
from hybrid_store.sync.write_queue import WriteQueue


@pytest.fixture
def engine(remote, schemas, schema_map):
    memory = InMemoryStore(schema_map)
    queue = WriteQueue(remote, schema_map, delay=0)
    return SyncEngine(remote, memory, queue, schemas)


@pytest.fixture
def gated_engine(engine):
    """Engine wired to a fail-closed gate the way the facade wires it."""
    engine.gate = ReadinessGate(ReadyPolicy.FAIL_CLOSED, trigger=engine.run_sync_cycle)
    engine.queue.on_idle = engine.gate.kick
    return engine


class TestSyncStats:

    def test_defaults(self):
        stats = SyncStats()
        assert stats.success is True
        assert stats.applied is True

    def test_applied_false_when_skipped_or_stale(self):
        assert SyncStats(skipped=True).applied is False
        assert SyncStats(stale=True).applied is False
        assert SyncStats(success=False).applied is False

    def test_to_dict(self):
        stats = SyncStats(records={"Tasks": 2}, errors=["x"])
        data = stats.to_dict()
        assert data["records"] == {"Tasks": 2}
        assert data["errors"] == ["x"]
        assert data["applied"] is True


class TestSyncCycle:
    """One bulk read, wholesale replacement."""

    def test_single_bulk_read_replaces_memory(self, engine, remote):
        engine.memory.insert("Tasks", {"TaskID": "local-only"})
        stats = engine.run_sync_cycle()

        assert stats.applied
        assert remote.ops("read_grids") == [("read_grids", ("Tasks", "Users"))]
        assert engine.memory.list("Tasks") == [
            {"TaskID": "T0", "Status": "Pending", "AssignedTo": "U1"}
        ]
        assert [u["Name"] for u in engine.memory.list("Users")] == ["Alice", "Bob"]
        assert stats.records == {"Tasks": 1, "Users": 2}
        assert engine.last_success_at == stats.started_at

    def test_remote_deletions_disappear_from_memory(self, engine, remote):
        engine.run_sync_cycle()
        remote.seed("Users", ["UserID", "Name", "Role"], [["U2", "Bob", "Manager"]])
        engine.run_sync_cycle()
        assert [u["UserID"] for u in engine.memory.list("Users")] == ["U2"]

    def test_skipped_while_queue_draining(self, engine, remote):
        remote.writes_open.clear()
        engine.queue.enqueue(Job.add("Tasks", {"TaskID": "T5"}))

        stats = engine.run_sync_cycle()

        assert stats.skipped
        assert stats.skip_reason == "write queue is draining"
        assert remote.ops("read_grids") == []
        assert engine.cycles_skipped == 1
        remote.writes_open.set()
        assert engine.queue.flush(timeout=5)

    def test_skipped_while_another_cycle_runs(self, engine, remote):
        remote.reads_open.clear()
        worker = threading.Thread(target=engine.run_sync_cycle)
        worker.start()
        assert remote.read_started.wait(5)

        stats = engine.run_sync_cycle()
        assert stats.skipped
        assert stats.skip_reason == "sync already running"

        remote.reads_open.set()
        worker.join(5)
        assert len(remote.ops("read_grids")) == 1

    def test_read_failure_keeps_previous_snapshot(self, engine, remote):
        engine.run_sync_cycle()
        before = engine.memory.list("Users")
        remote.fail_reads = RemoteStoreError("HTTP 503")

        stats = engine.run_sync_cycle()

        assert stats.success is False
        assert "HTTP 503" in stats.errors[0]
        assert engine.memory.list("Users") == before
        assert engine.is_syncing is False

    def test_snapshot_discarded_when_write_queued_mid_read(self, engine, remote):
        remote.reads_open.clear()
        result = {}
        worker = threading.Thread(target=lambda: result.update(stats=engine.run_sync_cycle()))
        worker.start()
        assert remote.read_started.wait(5)

        with engine.lock:
            engine.memory.insert("Tasks", {"TaskID": "T7", "Status": "Pending"})
            engine.queue.enqueue(Job.add("Tasks", {"TaskID": "T7", "Status": "Pending"}))
        remote.reads_open.set()
        worker.join(5)

        assert result["stats"].stale is True
        assert result["stats"].applied is False
        assert engine.memory.find("Tasks", "TaskID", "T7") is not None
        assert engine.queue.flush(timeout=5)

    def test_counters_track_run_and_skipped_cycles(self, engine, remote):
        engine.run_sync_cycle()
        remote.writes_open.clear()
        engine.queue.enqueue(Job.add("Tasks", {"TaskID": "T5"}))
        engine.run_sync_cycle()
        engine.run_sync_cycle()
        remote.writes_open.set()
        assert engine.queue.flush(timeout=5)

        assert (engine.cycles_run, engine.cycles_skipped) == (1, 2)

    def test_change_detection(self, engine, remote):
        first = engine.run_sync_cycle()
        assert first.collections_changed == ["Tasks", "Users"]

        second = engine.run_sync_cycle()
        assert second.collections_changed == []
        assert second.collections_unchanged == ["Tasks", "Users"]

        remote.seed("Tasks", ["TaskID", "Status", "AssignedTo"], [["T0", "Completed", "U1"]])
        third = engine.run_sync_cycle()
        assert third.collections_changed == ["Tasks"]
        assert third.collections_unchanged == ["Users"]

    def test_sync_status(self, engine):
        engine.run_sync_cycle()
        status = engine.get_sync_status()
        assert status["syncing"] is False
        assert status["cycles_run"] == 1
        assert status["last"]["applied"] is True


class TestGateRetrigger:
    """Blocked consumers get another first-sync attempt once writes settle."""

    def test_busy_skip_retries_after_drain(self, gated_engine, remote):
        remote.writes_open.clear()
        gated_engine.queue.enqueue(Job.add("Tasks", {"TaskID": "T5"}))

        results = []
        waiter = threading.Thread(
            target=lambda: results.append(gated_engine.gate.wait(timeout=5))
        )
        waiter.start()
        deadline = time.time() + 5
        while gated_engine.cycles_skipped < 1 and time.time() < deadline:
            time.sleep(0.01)
        assert gated_engine.cycles_skipped == 1
        assert gated_engine.gate.is_ready is False

        remote.writes_open.set()
        waiter.join(5)

        assert results == [True]
        assert gated_engine.gate.has_data is True
        assert gated_engine.memory.find("Tasks", "TaskID", "T5") is not None
        assert gated_engine.cycles_run == 1

    def test_busy_skip_without_waiters_stays_untriggered(self, gated_engine, remote):
        remote.writes_open.clear()
        gated_engine.queue.enqueue(Job.add("Tasks", {"TaskID": "T5"}))

        assert gated_engine.run_sync_cycle().skipped
        remote.writes_open.set()
        assert gated_engine.queue.flush(timeout=5)

        assert gated_engine.gate.triggered is False
        assert gated_engine.cycles_run == 0
        assert remote.ops("read_grids") == []

    def test_stale_first_cycle_is_retried(self, gated_engine, remote):
        remote.reads_open.clear()
        results = []
        waiter = threading.Thread(
            target=lambda: results.append(gated_engine.gate.wait(timeout=5))
        )
        waiter.start()
        assert remote.read_started.wait(5)

        with gated_engine.lock:
            gated_engine.memory.insert("Tasks", {"TaskID": "T7", "Status": "Pending"})
            gated_engine.queue.enqueue(Job.add("Tasks", {"TaskID": "T7", "Status": "Pending"}))
        remote.reads_open.set()
        waiter.join(5)

        assert results == [True]
        assert gated_engine.gate.has_data is True
        assert len(remote.ops("read_grids")) == 2
        assert gated_engine.memory.find("Tasks", "TaskID", "T7") is not None


class TestSyncScheduler:

    def test_runs_eagerly_then_periodically(self, engine):
        scheduler = SyncScheduler(engine, interval=0.05)
        scheduler.start()
        try:
            deadline = time.time() + 5
            while engine.cycles_run < 3 and time.time() < deadline:
                time.sleep(0.01)
        finally:
            scheduler.stop(timeout=5)

        assert engine.cycles_run >= 3
        assert scheduler.running is False

    def test_not_eager(self, engine):
        scheduler = SyncScheduler(engine, interval=60)
        scheduler.start(eager=False)
        scheduler.stop(timeout=5)
        assert engine.cycles_run == 0

    def test_start_twice_is_noop(self, engine):
        scheduler = SyncScheduler(engine, interval=60)
        scheduler.start(eager=False)
        thread = scheduler._thread
        scheduler.start(eager=False)
        assert scheduler._thread is thread
        scheduler.stop(timeout=5)

    def test_tick_survives_errors(self, engine, monkeypatch):
        def boom():
            raise RuntimeError("unexpected")

        monkeypatch.setattr(engine, "run_sync_cycle", boom)
        scheduler = SyncScheduler(engine, interval=60)
        scheduler._tick()
