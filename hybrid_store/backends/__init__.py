"""Remote store backends.

Each backend implements the RemoteStore interface.

Available backends:
    - MemoryRemoteStore: grids held in process
    - CsvRemoteStore: one CSV file per collection in a directory
    - SheetsRemoteStore: Google Sheets v4 REST API

Usage:
    from hybrid_store.backends import get_backend

    store = get_backend("csv", data_dir="./data")
    store.ensure_collection(schema)
"""

from typing import Type

from .base import RemoteStore, grid_to_records


def get_backend_class(name: str) -> Type[RemoteStore]:
    """Get the backend class registered under a name.

    Args:
        name: Backend name ("memory", "csv", or "sheets")

    Raises:
        NotImplementedError: If the backend is unknown
    """
    if name == "memory":
        from .memory import MemoryRemoteStore
        return MemoryRemoteStore
    elif name == "csv":
        from .csv_dir import CsvRemoteStore
        return CsvRemoteStore
    elif name == "sheets":
        from .sheets import SheetsRemoteStore
        return SheetsRemoteStore
    else:
        raise NotImplementedError(
            f"Backend '{name}' is not supported. "
            f"Supported backends: memory, csv, sheets"
        )


def get_backend(name: str = "memory", **kwargs) -> RemoteStore:
    """Instantiate a backend by name, passing kwargs to its constructor."""
    return get_backend_class(name)(**kwargs)


__all__ = [
    "RemoteStore",
    "grid_to_records",
    "get_backend",
    "get_backend_class",
]
