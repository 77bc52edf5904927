"""
Point-in-time snapshot cache over a versioned log.

The SnapshotCache answers "what was entity E at version V?" without
materialising a snapshot per queried version. It keeps:
- an EntityVersionIndex: latest version per key, complete up to a watermark
- an EntryStore: decoded (key, version) nodes with back-pointers

A read first catches the index up to the requested version, then walks
the key's back-pointers from its latest version down to the first one
at or below the requested version. Every node visited is memoised, so
each (key, version) costs at most one log round-trip per process no
matter how many different versions are queried.

Invariants:
    - Results are pure functions of (log contents up to version, query)
    - No locks: concurrent callers may redundantly fetch the same range
      or node; all such computations produce identical results
    - Log errors propagate unchanged; a failed catch-up leaves the index
      and watermark untouched
    - Unknown type tags raise UnsupportedTypeError, never skipped

How to change safely:
    - Keep index application and the watermark update free of awaits
    - Never mutate a published CacheEntry
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from ..log.base import ContractViolationError, VersionedLog
from ..schema.registry import CodecRegistry
from ..schema.types import TOMBSTONE, EntityKey
from .entries import CacheEntry, EntryStore
from .index import EntityVersionIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time counters of a SnapshotCache.

    Attributes:
        watermark: Highest log version incorporated into the index
        indexed_keys: Distinct entity keys ever seen
        cached_entries: Materialised (key, version) nodes
        node_fetches: snapshot_at() calls issued to the log
        range_fetches: versions_in_range() calls issued to the log
    """

    watermark: int
    indexed_keys: int
    cached_entries: int
    node_fetches: int
    range_fetches: int

    def to_dict(self) -> dict[str, int]:
        return {
            "watermark": self.watermark,
            "indexed_keys": self.indexed_keys,
            "cached_entries": self.cached_entries,
            "node_fetches": self.node_fetches,
            "range_fetches": self.range_fetches,
        }


class SnapshotCache:
    """Snapshot cache for one versioned log.

    Each instance owns its index, entry store and watermark; any number
    of caches (for example one per log stream) can coexist.

    Attributes:
        log: The versioned log this cache reads
        registry: Frozen codec registry for decoding payloads

    Example:
        >>> cache = SnapshotCache(log, default_registry())
        >>> group = await cache.get(EntityKey("ActivityGroup", 3), version=120)
        >>> groups = await cache.get_all("ActivityGroup", version=120)
    """

    def __init__(self, log: VersionedLog, registry: CodecRegistry) -> None:
        """Initialize an empty cache.

        Args:
            log: Versioned log to read from
            registry: Codec registry; must be frozen

        Raises:
            ValueError: If the registry is not frozen
        """
        if not registry.frozen:
            raise ValueError("SnapshotCache requires a frozen CodecRegistry")

        self.log = log
        self.registry = registry
        self._index = EntityVersionIndex()
        self._entries = EntryStore()
        self._node_fetches = 0
        self._range_fetches = 0

    @property
    def watermark(self) -> int:
        """Highest log version incorporated into the index (-1 initially)."""
        return self._index.watermark

    @property
    def index(self) -> EntityVersionIndex:
        return self._index

    @property
    def entries(self) -> EntryStore:
        return self._entries

    def stats(self) -> CacheStats:
        return CacheStats(
            watermark=self._index.watermark,
            indexed_keys=len(self._index),
            cached_entries=len(self._entries),
            node_fetches=self._node_fetches,
            range_fetches=self._range_fetches,
        )

    async def ensure_watermark(self, target: int) -> None:
        """Make the index complete up to target.

        Fetches the latest version per key in (watermark, target] and
        applies them all before moving the watermark. The watermark moves
        to the highest version the fetch returned, never past the end of
        the log, so a target beyond the latest version does not hide
        records appended afterwards. Calling this twice with a target the
        log has reached does nothing the second time.

        Raises:
            UnsupportedTypeError: If the range holds an unregistered type;
                nothing from the range is applied
            StorageError: From the log; nothing is applied
        """
        watermark = self._index.watermark
        if target <= watermark:
            return

        self._range_fetches += 1
        records = await self.log.versions_in_range(watermark + 1, target)

        for record in records:
            self.registry.require(record.key.type_tag)

        changed = self._index.apply(records)
        logger.info(
            "Snapshot index caught up",
            extra={
                "from_version": watermark + 1,
                "to_version": target,
                "records": len(records),
                "changed": changed,
                "watermark": self._index.watermark,
            },
        )

    async def get(self, key: EntityKey, version: int) -> Optional[Any]:
        """State of an entity as of a version.

        Args:
            key: Entity key
            version: Target version; may exceed the log's latest version

        Returns:
            The decoded payload of the latest record of key at or below
            version, or None if the entity did not exist yet or was
            deleted by then

        Raises:
            UnsupportedTypeError: If key.type_tag is not registered
            PayloadDecodeError: If a record on the chain cannot be decoded
            StorageError: From the log
            ContractViolationError: If the log breaks its contract
        """
        self.registry.require(key.type_tag)
        await self.ensure_watermark(version)

        cursor = self._index.latest(key)
        while cursor is not None:
            entry = await self._entries.get_or_compute(
                key, cursor, functools.partial(self._fetch_entry, key, cursor)
            )
            if cursor <= version:
                return None if entry.is_tombstone else entry.data
            cursor = entry.previous_version

        return None

    async def get_all(self, type_tag: str, version: int) -> List[Tuple[int, Any]]:
        """Every live entity of a type as of a version.

        Returns:
            (entity_id, payload) pairs in entity_id order, excluding keys
            that did not exist yet or were deleted by version

        Raises:
            UnsupportedTypeError: If type_tag is not registered
            StorageError: From the log
        """
        self.registry.require(type_tag)
        await self.ensure_watermark(version)

        results: List[Tuple[int, Any]] = []
        for key in list(self._index.keys_of_type(type_tag)):
            payload = await self.get(key, version)
            if payload is not None:
                results.append((key.entity_id, payload))
        return results

    async def _fetch_entry(self, key: EntityKey, version: int) -> CacheEntry:
        self._node_fetches += 1
        snapshot = await self.log.snapshot_at(key, version)

        if snapshot.previous_version is not None and snapshot.previous_version >= version:
            raise ContractViolationError(
                f"Log returned previous version {snapshot.previous_version} "
                f"for {key} at version {version}",
                key=key,
                version=version,
            )

        if snapshot.data is None:
            data: Any = TOMBSTONE
        else:
            data = self.registry.decode(key.type_tag, snapshot.data)

        logger.debug(
            "Fetched snapshot node",
            extra={
                "key": str(key),
                "version": version,
                "previous_version": snapshot.previous_version,
                "tombstone": snapshot.data is None,
            },
        )
        return CacheEntry(data=data, previous_version=snapshot.previous_version)
