"""Mutation jobs replayed by the write queue."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from hybrid_store.config import JobKind


@dataclass(frozen=True)
class Job:
    """An immutable mutation request.

    Attributes:
        kind: ADD, UPDATE or DELETE
        collection: Target collection name
        payload: Full record for ADD, partial patch for UPDATE, empty for DELETE
        key_field: Field used to locate the row (UPDATE/DELETE)
        key_value: Value the key field must equal exactly
        seq: Enqueue sequence number, assigned by the write queue
    """
    kind: JobKind
    collection: str
    payload: Mapping[str, str] = field(default_factory=dict)
    key_field: Optional[str] = None
    key_value: Optional[str] = None
    seq: int = 0

    def __post_init__(self):
        # Copy so later changes to the caller's dict never reach the queue
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload or {})))

    @classmethod
    def add(cls, collection: str, record: Dict[str, str]) -> "Job":
        return cls(JobKind.ADD, collection, record)

    @classmethod
    def update(cls, collection: str, key_field: str, key_value: str, patch: Dict[str, str]) -> "Job":
        return cls(JobKind.UPDATE, collection, patch, key_field, key_value)

    @classmethod
    def delete(cls, collection: str, key_field: str, key_value: str) -> "Job":
        return cls(JobKind.DELETE, collection, None, key_field, key_value)

    def with_seq(self, seq: int) -> "Job":
        """Return a copy stamped with an enqueue sequence number."""
        return Job(self.kind, self.collection, self.payload, self.key_field, self.key_value, seq)

    def describe(self) -> str:
        """Short human-readable description for logs."""
        if self.kind is JobKind.ADD:
            return f"{self.kind.value} {self.collection}"
        return f"{self.kind.value} {self.collection} [{self.key_field}={self.key_value}]"

    def log_extra(self) -> Dict[str, object]:
        """Fields attached to write-queue log records."""
        return {"job_seq": self.seq, "collection": self.collection, "kind": self.kind.value}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "collection": self.collection,
            "payload": dict(self.payload),
            "key_field": self.key_field,
            "key_value": self.key_value,
            "seq": self.seq,
        }
