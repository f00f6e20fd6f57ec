"""Utility modules for the hybrid store.

This package provides:
- hashing: Fast record and snapshot digests
- logging: Configured logging with JSON/text output support
"""

from hybrid_store.utils.hashing import compare_hashes, hash_records, hash_snapshot
from hybrid_store.utils.logging import configure_root_logger, get_logger

__all__ = [
    "compare_hashes",
    "hash_records",
    "hash_snapshot",
    "configure_root_logger",
    "get_logger",
]
