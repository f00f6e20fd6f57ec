"""In-memory record store: the read path of the hybrid store.

Holds the current known state of every configured collection as an
ordered list of records. All reads are served from here.
"""

import threading
import logging
from typing import Dict, Iterable, List, Optional

from hybrid_store.errors import UnknownCollectionError

logger = logging.getLogger(__name__)

Record = Dict[str, str]
Snapshot = Dict[str, List[Record]]


class InMemoryStore:
    """Thread-safe ordered record lists keyed by collection name.

    The lock is held only while copying or mutating, never across remote
    calls. Records handed out by ``list`` and ``find`` are copies, so callers
    cannot mutate the store behind its back.
    """

    def __init__(self, collections: Iterable[str]):
        self._lock = threading.RLock()
        self._data: Dict[str, List[Record]] = {name: [] for name in collections}

    def _records(self, collection: str) -> List[Record]:
        try:
            return self._data[collection]
        except KeyError:
            raise UnknownCollectionError(collection) from None

    def collections(self) -> List[str]:
        """Names of all configured collections."""
        with self._lock:
            return list(self._data)

    def __contains__(self, collection: str) -> bool:
        return collection in self._data

    def list(self, collection: str) -> List[Record]:
        """Return current records, insertion order preserved."""
        with self._lock:
            return [dict(r) for r in self._records(collection)]

    def find(self, collection: str, key_field: str, key_value: str) -> Optional[Record]:
        """Return a copy of the first record whose key field equals key_value."""
        with self._lock:
            for record in self._records(collection):
                if record.get(key_field) == key_value:
                    return dict(record)
            return None

    def insert(self, collection: str, record: Record) -> None:
        """Append a record. Duplicate keys are not detected."""
        with self._lock:
            self._records(collection).append(dict(record))

    def patch(self, collection: str, key_field: str, key_value: str, partial: Record) -> bool:
        """Merge partial fields into the first matching record.

        Returns:
            True if a record was patched, False if no record matched
        """
        with self._lock:
            for record in self._records(collection):
                if record.get(key_field) == key_value:
                    record.update(partial)
                    return True
            return False

    def remove(self, collection: str, key_field: str, key_value: str) -> int:
        """Remove every record whose key field equals key_value.

        Returns:
            Number of records removed
        """
        with self._lock:
            records = self._records(collection)
            kept = [r for r in records if r.get(key_field) != key_value]
            removed = len(records) - len(kept)
            self._data[collection] = kept
            return removed

    def replace_all(self, snapshot: Snapshot) -> None:
        """Swap in every collection present in the snapshot at once.

        Collections missing from the snapshot keep their records; names the
        store was not configured with are ignored.
        """
        with self._lock:
            for name, records in snapshot.items():
                if name not in self._data:
                    logger.debug(f"Ignoring unconfigured collection in snapshot: {name}")
                    continue
                self._data[name] = [dict(r) for r in records]

    def counts(self) -> Dict[str, int]:
        """Record count per collection."""
        with self._lock:
            return {name: len(records) for name, records in self._data.items()}
