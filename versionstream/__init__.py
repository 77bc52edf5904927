"""
versionstream - point-in-time reads over an append-only entity log.

This package answers "what was entity E at version V?" against a
globally ordered log of entity versions, without materialising a
snapshot per queried version.

Architecture:
    ┌─────────────┐     ┌──────────────────────────────────────┐
    │   Caller    │────▶│            SnapshotCache             │
    │ get/get_all │     │  EntityVersionIndex   EntryStore     │
    └─────────────┘     └──────────────────┬───────────────────┘
                                           │ versions_in_range
                                           │ snapshot_at
                                           ▼
                        ┌──────────────────────────────────────┐
                        │     VersionedLog (SQLite/DynamoDB)   │
                        └──────────────────────────────────────┘

Invariants:
    - The log is the source of truth
    - Cache index and entries are derived, immutable once computed,
      and never invalidated
    - Versions are assigned max + 1 and never become visible out of order
    - Entity kinds form a closed set held by a frozen CodecRegistry

How to change safely:
    - Never rename a type tag once records have been written with it
    - New log backends must implement the VersionedLog protocol and
      its visibility ordering contract
"""

from ._version import __version__

__all__ = ["__version__"]
