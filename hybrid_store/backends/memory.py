"""Process-local remote store.

Keeps grids in a dict. Useful for local development and for exercising
the write queue and sync engine without a network.
"""

import copy
import threading
from typing import Dict, List, Optional, Sequence

from .base import Grid, RemoteStore
from ..errors import CollectionNotFound, RemoteStoreError


class MemoryRemoteStore(RemoteStore):
    """Remote store backed by in-process grids."""

    def __init__(self, grids: Optional[Dict[str, Grid]] = None, ensure_retry_delay: float = 1.0):
        super().__init__(ensure_retry_delay=ensure_retry_delay)
        self._lock = threading.Lock()
        self._grids: Dict[str, Grid] = copy.deepcopy(grids) if grids else {}

    def _grid(self, name: str) -> Grid:
        try:
            return self._grids[name]
        except KeyError:
            raise CollectionNotFound(f"Collection does not exist: {name}") from None

    def seed(self, name: str, headers: Sequence[str], rows: Sequence[Sequence[str]] = ()) -> None:
        """Replace a collection's grid with headers plus rows."""
        with self._lock:
            self._grids[name] = [list(headers)] + [list(r) for r in rows]

    def grid(self, name: str) -> Grid:
        """Copy of a collection's grid ([] if absent)."""
        with self._lock:
            return copy.deepcopy(self._grids.get(name, []))

    def load_metadata(self) -> List[str]:
        with self._lock:
            return list(self._grids)

    def create_collection(self, name: str, headers: Sequence[str]) -> None:
        with self._lock:
            self._grids[name] = [list(headers)]

    def read_grids(self, names: Sequence[str]) -> Dict[str, Grid]:
        with self._lock:
            return {name: copy.deepcopy(self._grids.get(name, [])) for name in names}

    def read_grid(self, name: str) -> Grid:
        with self._lock:
            return copy.deepcopy(self._grid(name))

    def append_row(self, name: str, row: List[str]) -> None:
        with self._lock:
            self._grid(name).append(list(row))

    def write_row(self, name: str, index: int, row: List[str]) -> None:
        with self._lock:
            grid = self._grid(name)
            if not 0 < index < len(grid):
                raise RemoteStoreError(f"Row {index} out of range for {name}")
            grid[index] = list(row)

    def delete_row(self, name: str, index: int) -> None:
        with self._lock:
            grid = self._grid(name)
            if not 0 < index < len(grid):
                raise RemoteStoreError(f"Row {index} out of range for {name}")
            del grid[index]

    def describe(self) -> str:
        return f"memory ({len(self._grids)} collections)"
