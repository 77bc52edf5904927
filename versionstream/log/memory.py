"""
In-memory versioned log implementation for testing.

This module provides a simple in-memory log backend for:
- Unit tests
- Integration tests of the snapshot cache
- Local development without external dependencies

Invariants:
    - All data is lost on process exit
    - Provides the same ordering guarantees as the durable backends
    - Safe for concurrent use from multiple coroutines

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with VersionedLog protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import bisect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..schema.types import EntityKey
from .base import (
    ContractViolationError,
    Snapshot,
    StorageConnectionError,
    VersionRecord,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InMemoryRecord:
    """One appended record."""
    key: EntityKey
    data: Optional[str]


class InMemoryVersionedLog:
    """In-memory implementation of VersionedLog for testing.

    Records are held in a list indexed by version, plus a sorted list of
    versions per key for previous-version lookups.

    Attributes:
        latency: Seconds to sleep inside every read, to force interleaving
            of concurrent callers in tests
        snapshot_calls: (key, version) of every snapshot_at() call
        range_calls: (from, to) of every versions_in_range() call

    Example:
        >>> log = InMemoryVersionedLog()
        >>> await log.connect()
        >>> await log.append(EntityKey("Label", 1), "A")
        0
    """

    def __init__(self, latency: float = 0.0) -> None:
        """Initialize in-memory log.

        Args:
            latency: Artificial delay for read operations
        """
        self.latency = latency
        self._records: List[InMemoryRecord] = []
        self._versions_by_key: Dict[EntityKey, List[int]] = defaultdict(list)
        self._connected = False
        self._lock = asyncio.Lock()
        self._pending_failure: Optional[Exception] = None
        self.snapshot_calls: List[Tuple[EntityKey, int]] = []
        self.range_calls: List[Tuple[int, int]] = []

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryVersionedLog connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._records.clear()
        self._versions_by_key.clear()
        logger.debug("InMemoryVersionedLog closed")

    async def latest_version(self) -> Optional[int]:
        await self._before_read()
        if not self._records:
            return None
        return len(self._records) - 1

    async def versions_in_range(self, from_version: int, to_version: int) -> List[VersionRecord]:
        self.range_calls.append((from_version, to_version))
        await self._before_read()

        latest: Dict[EntityKey, int] = {}
        start = max(from_version, 0)
        end = min(to_version, len(self._records) - 1)
        for version in range(start, end + 1):
            latest[self._records[version].key] = version

        return [VersionRecord(key=key, version=version) for key, version in latest.items()]

    async def snapshot_at(self, key: EntityKey, version: int) -> Snapshot:
        self.snapshot_calls.append((key, version))
        await self._before_read()

        if not 0 <= version < len(self._records) or self._records[version].key != key:
            raise ContractViolationError(
                f"{key} was not written at version {version}", key=key, version=version
            )

        versions = self._versions_by_key[key]
        idx = bisect.bisect_left(versions, version)
        previous = versions[idx - 1] if idx > 0 else None
        return Snapshot(data=self._records[version].data, previous_version=previous)

    async def append(self, key: EntityKey, data: Optional[str]) -> int:
        """Append a record.

        Args:
            key: Entity key
            data: Encoded payload, None for a tombstone

        Returns:
            Assigned version
        """
        self._check_connected()
        self._raise_pending_failure()

        async with self._lock:
            version = len(self._records)
            self._records.append(InMemoryRecord(key=key, data=data))
            self._versions_by_key[key].append(version)

        logger.debug(
            "Record appended to in-memory log",
            extra={"key": str(key), "version": version, "tombstone": data is None},
        )
        return version

    async def _before_read(self) -> None:
        self._check_connected()
        if self.latency:
            await asyncio.sleep(self.latency)
        self._raise_pending_failure()

    def _check_connected(self) -> None:
        if not self._connected:
            raise StorageConnectionError("Not connected")

    def _raise_pending_failure(self) -> None:
        if self._pending_failure is not None:
            failure, self._pending_failure = self._pending_failure, None
            raise failure

    # Testing helpers

    def inject_failure(self, exception: Exception) -> None:
        """Make the next operation raise exception."""
        self._pending_failure = exception

    def get_record_count(self) -> int:
        """Total number of appended records (testing helper)."""
        return len(self._records)

    def reset_call_log(self) -> None:
        """Forget recorded snapshot/range calls (testing helper)."""
        self.snapshot_calls.clear()
        self.range_calls.clear()
