"""
Unit tests for the DynamoDB version sort key encoding.
"""

import pytest

from versionstream.log import parse_sortable_version, sortable_version


class TestSortableVersion:
    """Tests for sortable_version() and parse_sortable_version()."""

    @pytest.mark.parametrize(
        "version,expected",
        [(0, "b0"), (7, "b7"), (10, "c10"), (123, "d123"), (1000000, "h1000000")],
    )
    def test_encoding(self, version, expected):
        """The prefix encodes the digit count."""
        assert sortable_version(version) == expected
        assert parse_sortable_version(expected) == version

    def test_string_order_matches_numeric_order(self):
        """Sorting encoded keys sorts the versions."""
        versions = [0, 1, 9, 10, 11, 99, 100, 999, 1000, 54321, 123456789]

        encoded = sorted(sortable_version(v) for v in reversed(versions))

        assert [parse_sortable_version(k) for k in encoded] == versions

    def test_negative_rejected(self):
        """Versions are non-negative."""
        with pytest.raises(ValueError):
            sortable_version(-1)

    @pytest.mark.parametrize("sort_key", ["", "b", "c1", "b12", "x"])
    def test_malformed_rejected(self, sort_key):
        """Keys whose prefix does not match the digit count are rejected."""
        with pytest.raises(ValueError):
            parse_sortable_version(sort_key)
