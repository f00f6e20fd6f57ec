"""Abstract base class for remote store backends.

A backend exposes a handful of grid-level primitives (list collections,
read grids, append/overwrite/delete a row). The shared job semantics
(schema ensure, bulk read conversion, key lookup and patch merge) live
here so every backend behaves the same way.

Grid layout: row 0 is the header row, rows 1..n are data rows. Row
indexes passed to ``write_row`` and ``delete_row`` are grid indexes, so
the first data row is index 1.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence
import logging
import time

from ..config import CollectionSchema
from ..errors import RemoteStoreError, SyncReadFailure

Grid = List[List[str]]
Record = Dict[str, str]


def grid_to_records(grid: Optional[Grid], headers: Sequence[str]) -> List[Record]:
    """Convert a raw grid into records using the declared headers.

    Row 0 is skipped. Cells map to headers by position; a missing or empty
    cell becomes "". A grid with fewer than two rows has no data.
    """
    if not grid or len(grid) < 2:
        return []
    records = []
    for row in grid[1:]:
        record = {}
        for index, header in enumerate(headers):
            cell = row[index] if index < len(row) else None
            record[header] = str(cell) if cell not in (None, "") else ""
        records.append(record)
    return records


class RemoteStore(ABC):
    """Abstract base class for remote record stores.

    Subclasses implement the grid primitives; callers use
    ``ensure_collection``, ``bulk_read`` and the ``apply_*`` methods.

    Example:
        class MyStore(RemoteStore):
            def load_metadata(self) -> List[str]:
                return self.client.list_tables()
            # ... implement other primitives
    """

    def __init__(self, ensure_retry_delay: float = 1.0):
        """Initialize the backend with a logger.

        Args:
            ensure_retry_delay: Seconds to wait before retrying a failed
                metadata load in ``ensure_collection``
        """
        self.ensure_retry_delay = ensure_retry_delay
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        # Declared name (lowercased) -> name as it exists remotely
        self._resolved: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def load_metadata(self) -> List[str]:
        """Return the names of all collections that exist remotely.

        Raises:
            RemoteStoreError: If the metadata could not be fetched
        """

    @abstractmethod
    def create_collection(self, name: str, headers: Sequence[str]) -> None:
        """Create a collection whose first row holds the headers."""

    @abstractmethod
    def read_grids(self, names: Sequence[str]) -> Dict[str, Grid]:
        """Read several collections in one batch.

        Returns:
            Mapping of name -> grid; an absent collection maps to []
        """

    @abstractmethod
    def read_grid(self, name: str) -> Grid:
        """Read one collection's full grid, header row included."""

    @abstractmethod
    def append_row(self, name: str, row: List[str]) -> None:
        """Append a data row."""

    @abstractmethod
    def write_row(self, name: str, index: int, row: List[str]) -> None:
        """Overwrite the grid row at index."""

    @abstractmethod
    def delete_row(self, name: str, index: int) -> None:
        """Delete the grid row at index, shifting later rows up."""

    def describe(self) -> str:
        """Human-readable description of where the data lives."""
        return self.__class__.__name__

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    def remote_name(self, name: str) -> str:
        """Name to use remotely for a declared collection name."""
        return self._resolved.get(name.lower(), name)

    def ensure_collection(self, schema: CollectionSchema) -> str:
        """Make sure the collection exists remotely, creating it if absent.

        The lookup is case-insensitive. A failed metadata load is retried
        once after ``ensure_retry_delay`` seconds; a second failure is raised.

        Returns:
            The collection name as it exists remotely
        """
        try:
            existing = self.load_metadata()
        except RemoteStoreError as e:
            self.logger.warning(f"Failed to load collection metadata, retrying: {e}")
            time.sleep(self.ensure_retry_delay)
            existing = self.load_metadata()

        wanted = schema.name.lower()
        match = next((n for n in existing if n.lower() == wanted), None)
        if match is None:
            self.logger.info(
                f"Creating collection '{schema.name}' with headers {schema.headers}"
            )
            self.create_collection(schema.name, schema.headers)
            match = schema.name

        self._resolved[wanted] = match
        return match

    def bulk_read(self, schemas: Sequence[CollectionSchema]) -> Dict[str, List[Record]]:
        """Read every requested collection in one round trip.

        Raises:
            SyncReadFailure: If the batch read fails
        """
        names = [self.remote_name(s.name) for s in schemas]
        try:
            grids = self.read_grids(names)
        except SyncReadFailure:
            raise
        except RemoteStoreError as e:
            raise SyncReadFailure(f"Bulk read failed: {e}") from e

        return {
            schema.name: grid_to_records(grids.get(name), schema.headers)
            for schema, name in zip(schemas, names)
        }

    def apply_add(self, schema: CollectionSchema, record: Record) -> bool:
        """Append a record as one row in declared header order."""
        self.append_row(self.remote_name(schema.name), schema.to_row(record))
        return True

    def apply_update(
        self,
        schema: CollectionSchema,
        key_field: str,
        key_value: str,
        patch: Record,
    ) -> bool:
        """Merge patch fields into the first row whose key cell matches.

        Returns:
            True if a row was updated, False if no row matched
        """
        name = self.remote_name(schema.name)
        grid = self.read_grid(name)
        header = self._header(grid, schema)
        index = self._find_row(grid, header, key_field, key_value)
        if index is None:
            self.logger.debug(f"Update skipped, no row in {name} with {key_field}={key_value}")
            return False

        row = [str(c) if c is not None else "" for c in grid[index]]
        row.extend([""] * (len(header) - len(row)))
        for field_name, value in patch.items():
            if field_name not in header:
                self.logger.warning(f"Ignoring unknown field '{field_name}' for {name}")
                continue
            row[header.index(field_name)] = "" if value is None else str(value)

        self.write_row(name, index, row)
        return True

    def apply_delete(self, schema: CollectionSchema, key_field: str, key_value: str) -> bool:
        """Delete the first row whose key cell matches.

        Returns:
            True if a row was deleted, False if no row matched
        """
        name = self.remote_name(schema.name)
        grid = self.read_grid(name)
        index = self._find_row(grid, self._header(grid, schema), key_field, key_value)
        if index is None:
            self.logger.debug(f"Delete skipped, no row in {name} with {key_field}={key_value}")
            return False
        self.delete_row(name, index)
        return True

    @staticmethod
    def _header(grid: Grid, schema: CollectionSchema) -> List[str]:
        if grid and grid[0]:
            return [str(h) for h in grid[0]]
        return list(schema.headers)

    @staticmethod
    def _find_row(grid: Grid, header: List[str], key_field: str, key_value: str) -> Optional[int]:
        """Linear scan for an exact string match on the key cell.

        A blank key value never matches.
        """
        if not key_value or key_field not in header:
            return None
        column = header.index(key_field)
        for index in range(1, len(grid)):
            row = grid[index]
            if column < len(row) and row[column] == key_value:
                return index
        return None
