"""
Entity version index with watermark.

Maps every entity key ever seen to the most recent version at or below
the watermark at which it was written. Entries are grouped by type tag
so that get_all() can enumerate one kind without scanning the others.

Invariants:
    - The watermark never decreases, and never exceeds the highest
      version actually applied; versions above it may still be written
    - A stored version never decreases (apply() keeps the max)
    - Entries are never removed; get_all() depends on the full key set
    - apply() updates every entry before moving the watermark, and does
      so without yielding to the event loop
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, Optional

from ..log.base import VersionRecord
from ..schema.types import EntityKey

logger = logging.getLogger(__name__)


class EntityVersionIndex:
    """Latest known version per entity, complete up to the watermark."""

    def __init__(self) -> None:
        self._versions: Dict[str, Dict[int, int]] = {}
        self._watermark = -1

    @property
    def watermark(self) -> int:
        """Highest log version incorporated into the index (-1 when none)."""
        return self._watermark

    def latest(self, key: EntityKey) -> Optional[int]:
        """Most recent indexed version of key, or None if never seen."""
        by_id = self._versions.get(key.type_tag)
        if by_id is None:
            return None
        return by_id.get(key.entity_id)

    def keys_of_type(self, type_tag: str) -> Iterator[EntityKey]:
        """Every indexed key of a type, in entity_id order."""
        by_id = self._versions.get(type_tag, {})
        for entity_id in sorted(by_id):
            yield EntityKey(type_tag, entity_id)

    def apply(self, records: Iterable[VersionRecord]) -> int:
        """Apply the latest versions of a fetched range and advance the watermark.

        records must be the complete result of a range fetch starting at
        watermark + 1. The log is gapless and visible in order, so every
        version up to the highest one returned has been seen, and that
        version becomes the new watermark. An empty range leaves the
        watermark unchanged.

        Concurrent catch-ups may call this out of order; keeping the max
        per key and the max watermark makes every order converge.

        Returns:
            Number of index entries that changed
        """
        changed = 0
        highest = self._watermark
        for record in records:
            highest = max(highest, record.version)
            by_id = self._versions.setdefault(record.key.type_tag, {})
            current = by_id.get(record.key.entity_id)
            if current is None or record.version > current:
                by_id[record.key.entity_id] = record.version
                changed += 1

        self._watermark = highest
        return changed

    def __len__(self) -> int:
        return sum(len(by_id) for by_id in self._versions.values())
