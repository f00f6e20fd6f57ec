"""Configuration dataclasses for the hybrid store."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from enum import Enum


class JobKind(Enum):
    """Kind of mutation replayed to the remote store."""
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class ReadyPolicy(Enum):
    """What the readiness gate does when the first sync attempt fails."""
    FAIL_OPEN = "fail_open"       # Release waiters anyway (empty store)
    FAIL_CLOSED = "fail_closed"   # Keep waiters blocked until a sync succeeds


@dataclass
class CollectionSchema:
    """Declared shape of one remote collection.

    Attributes:
        name: Collection name (remote lookup is case-insensitive)
        headers: Ordered field names; row 0 of the remote grid
        key_field: Field identifying a record (defaults to first header)
    """
    name: str
    headers: List[str]
    key_field: Optional[str] = None

    def __post_init__(self):
        self.headers = list(self.headers)
        if self.key_field is None and self.headers:
            self.key_field = self.headers[0]

    def validate(self) -> Optional[str]:
        """Return an error message if invalid, None if valid."""
        if not self.name:
            return "Collection name is required"
        if not self.headers:
            return f"Collection '{self.name}' has no headers"
        if len(set(self.headers)) != len(self.headers):
            return f"Collection '{self.name}' has duplicate headers"
        if self.key_field not in self.headers:
            return f"Key field '{self.key_field}' is not a header of '{self.name}'"
        return None

    def to_row(self, record: Dict[str, str]) -> List[str]:
        """Lay out a record in header order, blanks for missing fields."""
        return [str(record.get(header, "") or "") for header in self.headers]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "headers": list(self.headers), "key_field": self.key_field}


DEFAULT_COLLECTIONS: List[CollectionSchema] = [
    CollectionSchema(
        name="Users",
        headers=["UserID", "Name", "Role", "Subdivision", "Station", "Email", "AuthKey"],
        key_field="UserID",
    ),
    CollectionSchema(
        name="Stations",
        headers=["Subdivision", "Stations"],
        key_field="Subdivision",
    ),
    CollectionSchema(
        name="Tasks",
        headers=[
            "TaskID", "SheetLink", "SheetType", "AssignedTo", "Status", "Date",
            "TaskName", "DueDate", "AllowNil", "IsNil", "GroupName", "CompletedDate",
        ],
        key_field="TaskID",
    ),
    CollectionSchema(
        name="Groups",
        headers=["GroupID", "GroupName", "CreatedBy", "UserIDs"],
        key_field="GroupID",
    ),
]


def default_collections() -> List[CollectionSchema]:
    """Fresh copies of the default domain schemas."""
    return [
        CollectionSchema(s.name, list(s.headers), s.key_field)
        for s in DEFAULT_COLLECTIONS
    ]


@dataclass
class EngineConfig:
    """Operational parameters for a HybridStore.

    Attributes:
        collections: Declared collection schemas
        write_delay: Seconds the write queue sleeps after each remote operation
        sync_interval: Seconds between periodic bulk syncs
        ensure_retry_delay: Seconds to wait before retrying a metadata load
        ready_policy: Readiness gate behaviour after a failed first sync
        enqueue_absent_keys: Queue update/delete jobs even when the key is not in memory
        shutdown_timeout: Seconds to wait for queued writes at interpreter exit
        log_file: Path to log file (None for no file handler)
        log_level: Level for the package logger
        json_logs: Emit JSON lines instead of text
    """
    collections: List[CollectionSchema] = field(default_factory=default_collections)
    write_delay: float = 0.3
    sync_interval: float = 30.0
    ensure_retry_delay: float = 1.0
    ready_policy: ReadyPolicy = ReadyPolicy.FAIL_OPEN
    enqueue_absent_keys: bool = True
    shutdown_timeout: float = 10.0
    log_file: Optional[Path] = None
    log_level: str = "INFO"
    json_logs: bool = False

    def __post_init__(self):
        """Coerce loose values (dicts, strings) into typed ones."""
        self.collections = [
            CollectionSchema(**c) if isinstance(c, dict) else c
            for c in self.collections
        ]
        if isinstance(self.ready_policy, str):
            self.ready_policy = ReadyPolicy(self.ready_policy.lower())
        if isinstance(self.log_file, str):
            self.log_file = Path(self.log_file)

    def validate(self) -> Optional[str]:
        """Return an error message if invalid, None if valid."""
        if self.write_delay < 0:
            return "write_delay cannot be negative"
        if self.sync_interval <= 0:
            return "sync_interval must be positive"
        if self.ensure_retry_delay < 0:
            return "ensure_retry_delay cannot be negative"
        if self.shutdown_timeout < 0:
            return "shutdown_timeout cannot be negative"
        seen = set()
        for schema in self.collections:
            error = schema.validate()
            if error:
                return error
            if schema.name.lower() in seen:
                return f"Collection '{schema.name}' declared twice"
            seen.add(schema.name.lower())
        return None

    def schema(self, name: str) -> Optional[CollectionSchema]:
        """Look up a declared schema by exact name."""
        for schema in self.collections:
            if schema.name == name:
                return schema
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Build a config from a plain mapping (e.g. parsed JSON)."""
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**data)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Load an EngineConfig from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the JSON is malformed or the config is invalid
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid config file {path}: {e}") from e

    config = EngineConfig.from_dict(data)
    error = config.validate()
    if error:
        raise ValueError(f"Invalid config file {path}: {error}")
    return config
