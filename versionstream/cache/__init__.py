"""
Snapshot cache module for versionstream.

This module resolves point-in-time reads against a versioned log:
- EntityVersionIndex: latest version per key, complete up to a watermark
- EntryStore: memoised (key, version) nodes with back-pointers
- SnapshotCache: catch-up plus backward-chain resolution

Invariants:
    - Memory grows with distinct cached versions, not versions x queries
    - Reads are point-in-time consistent without locks
"""

from .entries import CacheEntry, EntryStore
from .index import EntityVersionIndex
from .snapshot_cache import CacheStats, SnapshotCache

__all__ = [
    "CacheEntry",
    "EntryStore",
    "EntityVersionIndex",
    "SnapshotCache",
    "CacheStats",
]
