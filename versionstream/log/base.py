"""
Base protocol and types for the versioned log abstraction.

This module defines the VersionedLog protocol that all backends must
implement, along with the records it returns and its error types.

Invariants:
    - Versions are integers assigned as max + 1 per append, starting at 0
    - Versions are globally ordered across all entity keys in one log
    - A version never becomes visible before every smaller version
    - versions_in_range() and snapshot_at() are pure functions of the
      log contents up to the requested version

How to change safely:
    - Protocol changes require updating all implementations
    - New backends must preserve the visibility ordering contract;
      the snapshot cache relies on it for complete catch-up
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)

from ..schema.types import EntityKey

if TYPE_CHECKING:
    from ..config import ServiceConfig
    from ..schema.registry import CodecRegistry

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for log backend failures."""
    pass


class StorageConnectionError(StorageError):
    """Connection to the log backend failed."""
    pass


class StorageTimeoutError(StorageError):
    """Log backend operation timed out."""
    pass


class VersionConflictError(StorageError):
    """A concurrent append claimed the same version first.

    The append was not written. Retrying is the caller's decision.
    """
    pass


class ContractViolationError(Exception):
    """The log was asked for, or returned, something its contract forbids.

    Raised when snapshot_at() is called for a version at which the key was
    never written, or when a backend returns a back-pointer that does not
    strictly decrease. Either way this is a programming error, not a
    recoverable "not found".
    """

    def __init__(self, message: str, key: Optional[EntityKey] = None, version: Optional[int] = None) -> None:
        super().__init__(message)
        self.key = key
        self.version = version


@dataclass(frozen=True)
class VersionRecord:
    """Latest version of one key within a requested range.

    Attributes:
        key: Entity key
        version: Maximum version at which key was written in the range
    """

    key: EntityKey
    version: int


@dataclass(frozen=True)
class Snapshot:
    """Exact record written for a key at a version.

    Attributes:
        data: Encoded payload, or None for a tombstone
        previous_version: Greatest version < this one at which the key
            was written, or None if this is the first record for the key
    """

    data: Optional[str]
    previous_version: Optional[int]

    @property
    def is_tombstone(self) -> bool:
        return self.data is None


@runtime_checkable
class VersionedLog(Protocol):
    """Protocol for versioned log backends.

    Ordering contract:
        - Appends are totally ordered
        - Version v is never visible to readers before every version < v

    Empty log policy:
        - latest_version() returns None
        - versions_in_range() returns an empty list

    Example:
        >>> log = SqliteVersionedLog(config)
        >>> await log.connect()
        >>> v = await log.append(EntityKey("ActivityGroup", 3), '{"id": 3}')
        >>> await log.snapshot_at(EntityKey("ActivityGroup", 3), v)
        Snapshot(data='{"id": 3}', previous_version=None)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            StorageConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...

    @abstractmethod
    async def latest_version(self) -> Optional[int]:
        """Highest version in the log, or None if the log is empty."""
        ...

    @abstractmethod
    async def versions_in_range(self, from_version: int, to_version: int) -> List[VersionRecord]:
        """Latest version per key written within [from_version, to_version].

        Args:
            from_version: Inclusive lower bound
            to_version: Inclusive upper bound

        Returns:
            One VersionRecord per key written at least once in the range.
            Empty when from_version > to_version.

        Raises:
            StorageError: On backend failure
        """
        ...

    @abstractmethod
    async def snapshot_at(self, key: EntityKey, version: int) -> Snapshot:
        """Fetch the record written for key at version.

        Precondition: key was written at exactly this version.

        Raises:
            ContractViolationError: If key was not written at version
            StorageError: On backend failure
        """
        ...

    @abstractmethod
    async def append(self, key: EntityKey, data: Optional[str]) -> int:
        """Append a record for key.

        Args:
            key: Entity key
            data: Encoded payload, or None to record a deletion

        Returns:
            The version assigned to the record

        Raises:
            VersionConflictError: If a concurrent append won the version
            StorageError: On backend failure
        """
        ...


async def append_entity(
    log: VersionedLog,
    registry: "CodecRegistry",
    entity_id: int,
    entity: Any,
) -> int:
    """Encode an entity with its registered codec and append it.

    Args:
        log: Target log
        registry: Registry holding the entity's codec
        entity_id: Identifier of the entity within its kind
        entity: Payload instance

    Returns:
        The version assigned to the record
    """
    type_tag, raw = registry.encode(entity)
    return await log.append(EntityKey(type_tag, entity_id), raw)


async def append_tombstone(log: VersionedLog, key: EntityKey) -> int:
    """Record the deletion of key."""
    return await log.append(key, None)


def create_versioned_log(config: "ServiceConfig") -> VersionedLog:
    """Factory function to create a versioned log from configuration.

    Args:
        config: Service configuration

    Returns:
        Appropriate VersionedLog implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import LogBackend
    from .dynamodb import DynamoDbVersionedLog
    from .memory import InMemoryVersionedLog
    from .sqlite import SqliteVersionedLog

    if config.backend == LogBackend.SQLITE:
        return SqliteVersionedLog(config.sqlite)
    elif config.backend == LogBackend.DYNAMODB:
        return DynamoDbVersionedLog(config.dynamodb)
    elif config.backend == LogBackend.MEMORY:
        return InMemoryVersionedLog()
    else:
        raise ValueError(f"Unsupported log backend: {config.backend}")
