"""
Memoised snapshot nodes.

A CacheEntry is the decoded record of one entity at one version plus the
back-pointer to the entity's previous version. Entries are immutable and
keyed by an exact (key, version), so once published they are correct
for the life of the process.

Invariants:
    - An entry is published once and never replaced
    - previous_version < the entry's own version
    - Concurrent computations of the same entry may both run; the first
      to publish wins and every caller gets the published instance
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from ..schema.types import TOMBSTONE, EntityKey, Tombstone

logger = logging.getLogger(__name__)

EntryKey = Tuple[EntityKey, int]


@dataclass(frozen=True)
class CacheEntry:
    """Decoded snapshot node.

    Attributes:
        data: Decoded payload, or TOMBSTONE if deleted at this version
        previous_version: Previous version of the same key, or None
    """

    data: Union[Any, Tombstone]
    previous_version: Optional[int]

    @property
    def is_tombstone(self) -> bool:
        return self.data is TOMBSTONE


class EntryStore:
    """Append-only map of (EntityKey, version) -> CacheEntry.

    Lookups are plain dict reads. get_or_compute() awaits the computation
    outside of any lock and publishes with setdefault(), so a slower
    duplicate computation never overwrites an entry already handed out.
    """

    def __init__(self) -> None:
        self._entries: Dict[EntryKey, CacheEntry] = {}

    def get(self, key: EntityKey, version: int) -> Optional[CacheEntry]:
        return self._entries.get((key, version))

    async def get_or_compute(
        self,
        key: EntityKey,
        version: int,
        compute: Callable[[], Awaitable[CacheEntry]],
    ) -> CacheEntry:
        """Return the published entry, computing and publishing it on a miss.

        Errors from compute propagate and leave the store unchanged.
        """
        entry = self._entries.get((key, version))
        if entry is not None:
            return entry

        entry = await compute()
        return self._entries.setdefault((key, version), entry)

    def __contains__(self, item: object) -> bool:
        return item in self._entries

    def __len__(self) -> int:
        return len(self._entries)
