#!/usr/bin/env python3
"""Basic usage example for Hybrid Store.

This example demonstrates:
1. Creating a HybridStore on a CSV directory backend
2. Waiting for the first sync
3. Adding, completing and deleting a task (memory answers at once)
4. Watching the write-behind queue catch up
5. A bulk sync that brings in an edit made directly to the remote store
6. Stopping with a final flush

Run this example:
    python basic_usage.py
"""

import csv
import tempfile
import time
from datetime import date
from pathlib import Path

from hybrid_store import EngineConfig, HybridStore, ReadyPolicy
from hybrid_store.backends import get_backend


def main():
    with tempfile.TemporaryDirectory() as temp_dir:
        data_dir = Path(temp_dir) / "data"

        print("=" * 60)
        print("Hybrid Store - Basic Usage Example")
        print("=" * 60)

        # ---------------------------------------------------------------------
        # Step 1: Create the store
        # ---------------------------------------------------------------------
        print("\n[1] Creating HybridStore on a CSV directory...")

        config = EngineConfig(
            write_delay=0.3,                    # Pause after every remote write
            sync_interval=30.0,                 # Bulk refresh period
            ready_policy=ReadyPolicy.FAIL_OPEN, # Serve an empty store if the first sync fails
        )
        store = HybridStore(get_backend("csv", data_dir=data_dir), config)
        print(f"    Remote: {store.status()['remote']}")

        # ---------------------------------------------------------------------
        # Step 2: Start and wait for the first sync
        # ---------------------------------------------------------------------
        print("\n[2] Starting periodic sync...")
        store.start()
        ready = store.await_ready(timeout=10)
        print(f"    Ready: {ready}")

        # ---------------------------------------------------------------------
        # Step 3: Mutations hit memory immediately
        # ---------------------------------------------------------------------
        print("\n[3] Creating and completing a task...")

        start = time.perf_counter()
        store.enqueue_add("Tasks", {
            "TaskID": "T1001",
            "TaskName": "Inspect signal box",
            "AssignedTo": "U1",
            "Status": "Pending",
        })
        store.enqueue_update("Tasks", "TaskID", "T1001", {
            "Status": "Completed",
            "CompletedDate": date.today().isoformat(),
        })
        store.enqueue_add("Tasks", {"TaskID": "T1002", "Status": "Pending"})
        store.enqueue_delete("Tasks", "TaskID", "T1002")
        elapsed = (time.perf_counter() - start) * 1000

        print(f"    4 mutations returned in {elapsed:.2f}ms")
        print(f"    Memory now: {store.find('Tasks', 'T1001')}")
        print(f"    Jobs still pending remotely: {store.queue.pending}")

        # ---------------------------------------------------------------------
        # Step 4: The queue catches up in order
        # ---------------------------------------------------------------------
        print("\n[4] Waiting for the write queue...")
        store.flush(timeout=10)
        with open(data_dir / "Tasks.csv", newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        print(f"    Tasks.csv has {len(rows) - 1} data row(s)")
        print(f"    Queue stats: {store.queue.stats.to_dict()}")

        # ---------------------------------------------------------------------
        # Step 5: Someone edits the remote directly; a sync pulls it in
        # ---------------------------------------------------------------------
        print("\n[5] Editing the remote store behind the store's back...")
        with open(data_dir / "Tasks.csv", "a", newline="", encoding="utf-8") as f:
            csv.writer(f).writerow(["T2000", "", "", "U2", "Pending"])

        stats = store.run_sync_cycle()
        print(f"    Sync applied: {stats.applied}")
        print(f"    Collections changed: {stats.collections_changed}")
        print(f"    Tasks in memory: {[t['TaskID'] for t in store.list('Tasks')]}")

        # ---------------------------------------------------------------------
        # Step 6: Stop (flushes anything still queued)
        # ---------------------------------------------------------------------
        print("\n[6] Stopping...")
        print(f"    Clean shutdown: {store.stop(timeout=10)}")

        print("\n" + "=" * 60)
        print("Example complete!")
        print("=" * 60)


if __name__ == "__main__":
    main()
