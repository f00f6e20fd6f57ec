"""CSV directory remote store.

Each collection is one ``<name>.csv`` file in a directory. Row 0 of the
file is the header row. Rewrites go through a temporary file and an
atomic rename so a crash never leaves a half-written collection.
"""

import csv
import os
import threading
from pathlib import Path
from typing import Dict, List, Sequence, Union

from .base import Grid, RemoteStore
from ..errors import CollectionNotFound, RemoteStoreError


class CsvRemoteStore(RemoteStore):
    """Remote store backed by a directory of CSV files.

    Attributes:
        data_dir: Directory holding the CSV files
    """

    SUFFIX = ".csv"

    def __init__(self, data_dir: Union[str, Path], ensure_retry_delay: float = 1.0):
        super().__init__(ensure_retry_delay=ensure_retry_delay)
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

    def _path(self, name: str) -> Path:
        return self.data_dir / f"{name}{self.SUFFIX}"

    def _read(self, name: str) -> Grid:
        path = self._path(name)
        try:
            with open(path, "r", newline="", encoding="utf-8") as f:
                return [row for row in csv.reader(f)]
        except FileNotFoundError:
            raise CollectionNotFound(f"Collection does not exist: {path}") from None
        except (OSError, csv.Error) as e:
            raise RemoteStoreError(f"Failed to read {path}: {e}") from e

    def _write(self, name: str, grid: Grid) -> None:
        path = self._path(name)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            with open(tmp, "w", newline="", encoding="utf-8") as f:
                csv.writer(f).writerows(grid)
            os.replace(tmp, path)
        except OSError as e:
            raise RemoteStoreError(f"Failed to write {path}: {e}") from e

    def load_metadata(self) -> List[str]:
        # A missing directory just has no collections yet
        if not self.data_dir.exists():
            return []
        try:
            return sorted(p.stem for p in self.data_dir.glob(f"*{self.SUFFIX}") if p.is_file())
        except OSError as e:
            raise RemoteStoreError(f"Failed to list {self.data_dir}: {e}") from e

    def create_collection(self, name: str, headers: Sequence[str]) -> None:
        with self._lock:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise RemoteStoreError(f"Failed to create {self.data_dir}: {e}") from e
            self._write(name, [list(headers)])

    def read_grids(self, names: Sequence[str]) -> Dict[str, Grid]:
        with self._lock:
            return {
                name: self._read(name) if self._path(name).exists() else []
                for name in names
            }

    def read_grid(self, name: str) -> Grid:
        with self._lock:
            return self._read(name)

    def append_row(self, name: str, row: List[str]) -> None:
        with self._lock:
            path = self._path(name)
            if not path.exists():
                raise CollectionNotFound(f"Collection does not exist: {path}")
            try:
                with open(path, "a", newline="", encoding="utf-8") as f:
                    csv.writer(f).writerow(row)
            except OSError as e:
                raise RemoteStoreError(f"Failed to append to {path}: {e}") from e

    def write_row(self, name: str, index: int, row: List[str]) -> None:
        with self._lock:
            grid = self._read(name)
            if not 0 < index < len(grid):
                raise RemoteStoreError(f"Row {index} out of range for {name}")
            grid[index] = list(row)
            self._write(name, grid)

    def delete_row(self, name: str, index: int) -> None:
        with self._lock:
            grid = self._read(name)
            if not 0 < index < len(grid):
                raise RemoteStoreError(f"Row {index} out of range for {name}")
            del grid[index]
            self._write(name, grid)

    def describe(self) -> str:
        return f"csv ({self.data_dir})"
