"""
Versioned log abstraction for versionstream.

This module provides a pluggable log backend interface supporting:
- SQLite (relational backend, single file, many streams)
- AWS DynamoDB (key-value backend)
- In-memory (for testing)

The log is the system of record. Snapshot caches are derived views that
can be rebuilt from it at any time.

Invariants:
    - append() claims max + 1 and returns only after the record is stored
    - Versions are totally ordered within one log
    - A version is never visible before every smaller version
    - Failed appends must not result in partial writes

How to change safely:
    - New backends must implement the VersionedLog protocol
    - Verify the visibility ordering contract under concurrent appenders
"""

from .base import (
    ContractViolationError,
    Snapshot,
    StorageConnectionError,
    StorageError,
    StorageTimeoutError,
    VersionConflictError,
    VersionedLog,
    VersionRecord,
    append_entity,
    append_tombstone,
    create_versioned_log,
)
from .dynamodb import DynamoDbVersionedLog, parse_sortable_version, sortable_version
from .memory import InMemoryVersionedLog
from .sqlite import SqliteVersionedLog

__all__ = [
    # Protocol and types
    "VersionedLog",
    "VersionRecord",
    "Snapshot",
    "StorageError",
    "StorageConnectionError",
    "StorageTimeoutError",
    "VersionConflictError",
    "ContractViolationError",
    # Helpers
    "append_entity",
    "append_tombstone",
    "create_versioned_log",
    "sortable_version",
    "parse_sortable_version",
    # Implementations
    "SqliteVersionedLog",
    "DynamoDbVersionedLog",
    "InMemoryVersionedLog",
]
