"""
Unit tests for EntityVersionIndex.

Tests cover:
- Watermark advancement
- Monotonic per-key versions
- Enumeration by type
"""

from versionstream.cache import EntityVersionIndex
from versionstream.log import VersionRecord
from versionstream.schema import EntityKey

K1 = EntityKey("Label", 1)
K2 = EntityKey("Label", 2)
C1 = EntityKey("Counter", 1)


class TestEntityVersionIndex:
    """Tests for EntityVersionIndex."""

    def test_starts_empty(self):
        """A new index has nothing and watermark -1."""
        index = EntityVersionIndex()

        assert index.watermark == -1
        assert index.latest(K1) is None
        assert len(index) == 0

    def test_apply_sets_versions_and_watermark(self):
        """apply() records versions and moves the watermark to the highest one."""
        index = EntityVersionIndex()

        changed = index.apply([VersionRecord(K1, 0), VersionRecord(K2, 2)])

        assert changed == 2
        assert index.latest(K1) == 0
        assert index.latest(K2) == 2
        assert index.watermark == 2

    def test_apply_empty_range_keeps_watermark(self):
        """A range with no records does not move the watermark."""
        index = EntityVersionIndex()
        index.apply([VersionRecord(K1, 3)])

        assert index.apply([]) == 0
        assert index.watermark == 3

    def test_empty_index_stays_unset(self):
        """Nothing applied means nothing covered."""
        index = EntityVersionIndex()

        index.apply([])

        assert index.watermark == -1

    def test_stale_apply_does_not_regress(self):
        """An out-of-order apply of an older range changes nothing it should not."""
        index = EntityVersionIndex()
        index.apply([VersionRecord(K1, 8)])

        changed = index.apply([VersionRecord(K1, 3), VersionRecord(K2, 4)])

        assert changed == 1
        assert index.latest(K1) == 8
        assert index.latest(K2) == 4
        assert index.watermark == 8

    def test_reapply_is_idempotent(self):
        """Applying the same range twice leaves the same contents."""
        index = EntityVersionIndex()
        records = [VersionRecord(K1, 1), VersionRecord(C1, 2)]

        index.apply(records)
        assert index.apply(records) == 0
        assert index.latest(K1) == 1
        assert index.latest(C1) == 2
        assert index.watermark == 2

    def test_keys_of_type(self):
        """Keys are enumerated per type in entity_id order."""
        index = EntityVersionIndex()
        index.apply([VersionRecord(K2, 0), VersionRecord(C1, 1), VersionRecord(K1, 2)])

        assert list(index.keys_of_type("Label")) == [K1, K2]
        assert list(index.keys_of_type("Counter")) == [C1]
        assert list(index.keys_of_type("Widget")) == []
        assert len(index) == 3
