"""Shared pytest fixtures for hybrid_store tests.

Provides small schemas, an instrumented in-process remote store, and
store objects wired for fast, deterministic tests (no write delay, no
periodic sync unless a test starts it).
"""

import threading

import pytest

from hybrid_store.backends.memory import MemoryRemoteStore
from hybrid_store.config import CollectionSchema, EngineConfig, ReadyPolicy
from hybrid_store.store import HybridStore


TASK_HEADERS = ["TaskID", "Status", "AssignedTo"]
USER_HEADERS = ["UserID", "Name", "Role"]


class RecordingRemoteStore(MemoryRemoteStore):
    """MemoryRemoteStore that records calls and can be paused.

    Attributes:
        calls: Ordered list of ("op", ...) tuples
        writes_open: Cleared to make apply_* calls block until set
        reads_open: Cleared to make read_grids block until set
        read_started: Set when read_grids is entered
        fail_reads: Exception raised by read_grids when set
        fail_writes: Exception raised by apply_* when set
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []
        self._calls_lock = threading.Lock()
        self.writes_open = threading.Event()
        self.writes_open.set()
        self.reads_open = threading.Event()
        self.reads_open.set()
        self.read_started = threading.Event()
        self.fail_reads = None
        self.fail_writes = None

    def record(self, *entry):
        with self._calls_lock:
            self.calls.append(entry)

    def ops(self, *names):
        """Calls filtered to the given op names."""
        with self._calls_lock:
            return [c for c in self.calls if not names or c[0] in names]

    def read_grids(self, names):
        self.record("read_grids", tuple(names))
        self.read_started.set()
        self.reads_open.wait(5)
        if self.fail_reads is not None:
            raise self.fail_reads
        return super().read_grids(names)

    def _before_write(self, op, schema, key):
        self.writes_open.wait(5)
        self.record(op, schema.name, key)
        if self.fail_writes is not None:
            raise self.fail_writes

    def apply_add(self, schema, record):
        self._before_write("add", schema, record.get(schema.key_field))
        return super().apply_add(schema, record)

    def apply_update(self, schema, key_field, key_value, patch):
        self._before_write("update", schema, key_value)
        return super().apply_update(schema, key_field, key_value, patch)

    def apply_delete(self, schema, key_field, key_value):
        self._before_write("delete", schema, key_value)
        return super().apply_delete(schema, key_field, key_value)


@pytest.fixture
def schemas():
    """Two small collections."""
    return [
        CollectionSchema(name="Tasks", headers=list(TASK_HEADERS), key_field="TaskID"),
        CollectionSchema(name="Users", headers=list(USER_HEADERS), key_field="UserID"),
    ]


@pytest.fixture
def schema_map(schemas):
    return {s.name: s for s in schemas}


@pytest.fixture
def remote():
    """Instrumented remote store seeded with a little data."""
    store = RecordingRemoteStore(ensure_retry_delay=0)
    store.seed("Tasks", TASK_HEADERS, [
        ["T0", "Pending", "U1"],
    ])
    store.seed("Users", USER_HEADERS, [
        ["U1", "Alice", "User"],
        ["U2", "Bob", "Manager"],
    ])
    return store


@pytest.fixture
def engine_config(schemas):
    """Config with no write delay and a sync interval tests never reach."""
    return EngineConfig(
        collections=schemas,
        write_delay=0,
        sync_interval=3600,
        ensure_retry_delay=0,
        ready_policy=ReadyPolicy.FAIL_OPEN,
    )


@pytest.fixture
def store(remote, engine_config):
    """HybridStore on the recording remote, stopped after the test."""
    hybrid = HybridStore(remote, engine_config)
    yield hybrid
    remote.writes_open.set()
    remote.reads_open.set()
    hybrid.stop(flush=True, timeout=5)
