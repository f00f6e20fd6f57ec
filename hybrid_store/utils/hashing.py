"""Fast record hashing utilities.

Uses xxhash for speed. Digests let the sync engine report which
collections actually changed remotely between two bulk reads; speed
matters more than cryptographic security here.
"""

import hashlib
import json
from typing import Dict, List, Mapping, Sequence

import xxhash


def hash_records(records: Sequence[Mapping[str, str]], algorithm: str = "xxhash") -> str:
    """Compute a digest of an ordered record list.

    Field order inside a record does not matter; record order does.

    Args:
        records: Records to hash
        algorithm: Hash algorithm ("xxhash", "md5", "sha256")

    Returns:
        Hex digest
    """
    if algorithm == "xxhash":
        hasher = xxhash.xxh64()
    elif algorithm == "md5":
        hasher = hashlib.md5()
    elif algorithm == "sha256":
        hasher = hashlib.sha256()
    else:
        raise ValueError(f"Unknown algorithm: {algorithm}")

    for record in records:
        hasher.update(json.dumps(record, sort_keys=True, ensure_ascii=False).encode("utf-8"))
        hasher.update(b"\n")
    return hasher.hexdigest()


def hash_snapshot(snapshot: Mapping[str, Sequence[Mapping[str, str]]]) -> Dict[str, str]:
    """Hash every collection of a snapshot, returning name -> digest."""
    return {name: hash_records(records) for name, records in snapshot.items()}


def compare_hashes(
    source_hashes: Mapping[str, str],
    target_hashes: Mapping[str, str]
) -> Dict[str, List[str]]:
    """Compare two digest maps.

    Returns:
        Dict with keys "added", "removed", "modified", "unchanged", each a
        sorted list of collection names
    """
    source_keys = set(source_hashes)
    target_keys = set(target_hashes)
    common = source_keys & target_keys

    return {
        "added": sorted(source_keys - target_keys),
        "removed": sorted(target_keys - source_keys),
        "modified": sorted(k for k in common if source_hashes[k] != target_hashes[k]),
        "unchanged": sorted(k for k in common if source_hashes[k] == target_hashes[k]),
    }
