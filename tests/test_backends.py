"""Tests for hybrid_store.backends (base semantics, memory and CSV backends)."""

import csv
from unittest.mock import patch

import pytest

from hybrid_store.backends import get_backend, get_backend_class, grid_to_records
from hybrid_store.backends.csv_dir import CsvRemoteStore
from hybrid_store.backends.memory import MemoryRemoteStore
from hybrid_store.config import CollectionSchema
from hybrid_store.errors import CollectionNotFound, RemoteStoreError, SyncReadFailure


@pytest.fixture
def tasks_schema():
    return CollectionSchema(name="Tasks", headers=["TaskID", "Status", "Date"], key_field="TaskID")


class TestGridToRecords:
    """Grid -> record conversion."""

    def test_maps_by_position(self):
        grid = [["TaskID", "Status"], ["T1", "Pending"], ["T2", "Done"]]
        assert grid_to_records(grid, ["TaskID", "Status"]) == [
            {"TaskID": "T1", "Status": "Pending"},
            {"TaskID": "T2", "Status": "Done"},
        ]

    def test_missing_cells_are_blank(self):
        grid = [["a", "b", "c"], ["1"], ["2", None, "3"]]
        assert grid_to_records(grid, ["a", "b", "c"]) == [
            {"a": "1", "b": "", "c": ""},
            {"a": "2", "b": "", "c": "3"},
        ]

    def test_header_only_grid_is_empty(self):
        assert grid_to_records([["a", "b"]], ["a", "b"]) == []

    def test_empty_and_none(self):
        assert grid_to_records([], ["a"]) == []
        assert grid_to_records(None, ["a"]) == []

    def test_declared_headers_win_over_row_zero(self):
        grid = [["whatever", "labels"], ["1", "2"]]
        assert grid_to_records(grid, ["id", "value"]) == [{"id": "1", "value": "2"}]

    def test_extra_cells_ignored(self):
        grid = [["a"], ["1", "surplus"]]
        assert grid_to_records(grid, ["a"]) == [{"a": "1"}]


class TestEnsureCollection:
    """Schema ensure with case-insensitive lookup and one retry."""

    def test_creates_when_absent(self, tasks_schema):
        store = MemoryRemoteStore()
        assert store.ensure_collection(tasks_schema) == "Tasks"
        assert store.grid("Tasks") == [["TaskID", "Status", "Date"]]

    def test_case_insensitive_match(self, tasks_schema):
        store = MemoryRemoteStore()
        store.seed("tasks", ["TaskID", "Status", "Date"], [["T1", "Done", ""]])
        assert store.ensure_collection(tasks_schema) == "tasks"
        assert store.load_metadata() == ["tasks"]

        # Later operations use the remote spelling
        store.apply_add(tasks_schema, {"TaskID": "T2"})
        assert store.grid("tasks")[-1] == ["T2", "", ""]

    def test_retries_metadata_once(self, tasks_schema):
        store = MemoryRemoteStore(ensure_retry_delay=0)
        original = store.load_metadata
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RemoteStoreError("stale metadata")
            return original()

        with patch.object(store, "load_metadata", side_effect=flaky):
            assert store.ensure_collection(tasks_schema) == "Tasks"
        assert len(attempts) == 2

    def test_second_failure_raises(self, tasks_schema):
        store = MemoryRemoteStore(ensure_retry_delay=0)
        with patch.object(store, "load_metadata", side_effect=RemoteStoreError("down")):
            with pytest.raises(RemoteStoreError, match="down"):
                store.ensure_collection(tasks_schema)

    def test_retry_waits(self, tasks_schema):
        store = MemoryRemoteStore(ensure_retry_delay=1.5)
        calls = iter([RemoteStoreError("stale"), ["Tasks"]])

        def flaky():
            result = next(calls)
            if isinstance(result, Exception):
                raise result
            return result

        with patch.object(store, "load_metadata", side_effect=flaky), \
                patch("hybrid_store.backends.base.time.sleep") as sleep:
            store.ensure_collection(tasks_schema)
        sleep.assert_called_once_with(1.5)


class TestApplyOperations:
    """Row-level add/update/delete semantics shared by all backends."""

    @pytest.fixture
    def store(self, tasks_schema):
        store = MemoryRemoteStore()
        store.seed("Tasks", tasks_schema.headers, [
            ["T1", "Pending", "2024-01-01"],
            ["T2", "Pending", ""],
            ["T1", "Duplicate", ""],
        ])
        return store

    def test_add_uses_declared_order(self, store, tasks_schema):
        store.apply_add(tasks_schema, {"Date": "d", "TaskID": "T3", "Status": "New"})
        assert store.grid("Tasks")[-1] == ["T3", "New", "d"]

    def test_update_first_match_only(self, store, tasks_schema):
        assert store.apply_update(tasks_schema, "TaskID", "T1", {"Status": "Completed"}) is True
        grid = store.grid("Tasks")
        assert grid[1] == ["T1", "Completed", "2024-01-01"]
        assert grid[3] == ["T1", "Duplicate", ""]

    def test_update_no_match_is_noop(self, store, tasks_schema):
        before = store.grid("Tasks")
        assert store.apply_update(tasks_schema, "TaskID", "T9", {"Status": "X"}) is False
        assert store.grid("Tasks") == before

    def test_update_exact_string_match(self, store, tasks_schema):
        assert store.apply_update(tasks_schema, "TaskID", "t1", {"Status": "X"}) is False
        assert store.apply_update(tasks_schema, "TaskID", "T1 ", {"Status": "X"}) is False

    def test_update_pads_short_rows(self, tasks_schema):
        store = MemoryRemoteStore()
        store.seed("Tasks", tasks_schema.headers, [["T1"]])
        store.apply_update(tasks_schema, "TaskID", "T1", {"Date": "2024-02-02"})
        assert store.grid("Tasks")[1] == ["T1", "", "2024-02-02"]

    def test_update_ignores_unknown_fields(self, store, tasks_schema):
        store.apply_update(tasks_schema, "TaskID", "T2", {"Colour": "red", "Status": "Done"})
        assert store.grid("Tasks")[2] == ["T2", "Done", ""]

    def test_delete_first_match(self, store, tasks_schema):
        assert store.apply_delete(tasks_schema, "TaskID", "T1") is True
        assert [row[0] for row in store.grid("Tasks")[1:]] == ["T2", "T1"]

    def test_delete_no_match_is_noop(self, store, tasks_schema):
        assert store.apply_delete(tasks_schema, "TaskID", "nope") is False
        assert len(store.grid("Tasks")) == 4

    def test_blank_key_never_matches(self, tasks_schema):
        store = MemoryRemoteStore()
        store.seed("Tasks", tasks_schema.headers, [["", "orphan", ""]])
        assert store.apply_delete(tasks_schema, "TaskID", "") is False
        assert len(store.grid("Tasks")) == 2

    def test_write_to_missing_collection_raises(self, tasks_schema):
        store = MemoryRemoteStore()
        with pytest.raises(CollectionNotFound):
            store.apply_add(tasks_schema, {"TaskID": "T1"})


class TestBulkRead:

    def test_reads_all_collections(self, tasks_schema):
        users = CollectionSchema(name="Users", headers=["UserID", "Name"])
        store = MemoryRemoteStore()
        store.seed("Tasks", tasks_schema.headers, [["T1", "Pending"]])
        snapshot = store.bulk_read([tasks_schema, users])
        assert snapshot == {
            "Tasks": [{"TaskID": "T1", "Status": "Pending", "Date": ""}],
            "Users": [],
        }

    def test_failure_becomes_sync_read_failure(self, tasks_schema):
        store = MemoryRemoteStore()
        with patch.object(store, "read_grids", side_effect=RemoteStoreError("503")):
            with pytest.raises(SyncReadFailure, match="503"):
                store.bulk_read([tasks_schema])


class TestCsvRemoteStore:
    """CSV directory backend on a real temp directory."""

    def test_missing_directory_has_no_collections(self, tmp_path):
        store = CsvRemoteStore(tmp_path / "absent")
        assert store.load_metadata() == []

    def test_ensure_creates_file_with_headers(self, tmp_path, tasks_schema):
        store = CsvRemoteStore(tmp_path / "data")
        store.ensure_collection(tasks_schema)
        with open(tmp_path / "data" / "Tasks.csv", newline="") as f:
            assert list(csv.reader(f)) == [["TaskID", "Status", "Date"]]

    def test_round_trip_operations(self, tmp_path, tasks_schema):
        store = CsvRemoteStore(tmp_path)
        store.ensure_collection(tasks_schema)
        store.apply_add(tasks_schema, {"TaskID": "T1", "Status": "Pending"})
        store.apply_add(tasks_schema, {"TaskID": "T2", "Status": "Pending, urgent"})
        store.apply_update(tasks_schema, "TaskID", "T1", {"Status": "Completed"})
        store.apply_delete(tasks_schema, "TaskID", "T2")

        snapshot = store.bulk_read([tasks_schema])
        assert snapshot["Tasks"] == [{"TaskID": "T1", "Status": "Completed", "Date": ""}]

    def test_case_insensitive_file_lookup(self, tmp_path, tasks_schema):
        (tmp_path / "tasks.csv").write_text("TaskID,Status,Date\nT1,Pending,\n")
        store = CsvRemoteStore(tmp_path)
        assert store.ensure_collection(tasks_schema) == "tasks"
        assert store.bulk_read([tasks_schema])["Tasks"][0]["TaskID"] == "T1"
        assert store.load_metadata() == ["tasks"]

    def test_bulk_read_absent_file_is_empty(self, tmp_path, tasks_schema):
        store = CsvRemoteStore(tmp_path)
        assert store.bulk_read([tasks_schema]) == {"Tasks": []}

    def test_no_temp_files_left(self, tmp_path, tasks_schema):
        store = CsvRemoteStore(tmp_path)
        store.ensure_collection(tasks_schema)
        store.apply_add(tasks_schema, {"TaskID": "T1"})
        store.apply_update(tasks_schema, "TaskID", "T1", {"Status": "x"})
        assert sorted(p.name for p in tmp_path.iterdir()) == ["Tasks.csv"]

    def test_append_to_missing_collection_raises(self, tmp_path, tasks_schema):
        store = CsvRemoteStore(tmp_path)
        with pytest.raises(CollectionNotFound):
            store.apply_add(tasks_schema, {"TaskID": "T1"})


class TestGetBackend:

    def test_known_backends(self, tmp_path):
        assert isinstance(get_backend("memory"), MemoryRemoteStore)
        assert isinstance(get_backend("csv", data_dir=tmp_path), CsvRemoteStore)
        assert get_backend_class("sheets").__name__ == "SheetsRemoteStore"

    def test_unknown_backend(self):
        with pytest.raises(NotImplementedError, match="Supported backends"):
            get_backend("floppy")
