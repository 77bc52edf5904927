"""
SQLite versioned log backend.

This module stores the log in a single SQLite table. Several logs can
share one database file; each is identified by its stream name.

Version assignment:
    append() computes COALESCE(MAX(version) + 1, 0) and inserts the row
    in the same BEGIN IMMEDIATE transaction. IMMEDIATE takes the database
    write lock up front, so two appenders can never both read the same
    MAX and no version becomes visible before a smaller one.

Invariants:
    - (stream, version) is the primary key
    - A row with data NULL is a tombstone
    - Rows are never updated; clear() exists for tests and reloads only

How to change safely:
    - Schema migrations must be backward compatible
    - Keep the (stream, type, entity_id, version) index; previous-version
      lookups depend on it

Table schema:
    versionstream:
        - stream TEXT
        - version INTEGER
        - type TEXT
        - entity_id INTEGER
        - data TEXT (NULL for tombstones)
        - PRIMARY KEY (stream, version)
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..schema.types import EntityKey
from .base import (
    ContractViolationError,
    Snapshot,
    StorageConnectionError,
    StorageError,
    StorageTimeoutError,
    VersionConflictError,
    VersionRecord,
)

logger = logging.getLogger(__name__)


class SqliteVersionedLog:
    """SQLite implementation of the VersionedLog protocol.

    Thread safety:
        Each operation opens its own connection. Appends within one
        process are additionally serialised with an asyncio lock; across
        processes SQLite's write lock does the same job.

    Example:
        >>> log = SqliteVersionedLog(SqliteConfig(path="/tmp/log.db"))
        >>> await log.connect()
        >>> await log.append(EntityKey("ActivityGroup", 3), '{"id":3}')
        0
    """

    def __init__(self, config: Any) -> None:
        """Initialize the SQLite log.

        Args:
            config: SqliteConfig instance
        """
        self.config = config
        self.stream = config.stream
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, translating driver errors."""
        try:
            conn = sqlite3.connect(
                self.config.path,
                timeout=self.config.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise StorageConnectionError(f"Failed to open SQLite database {self.config.path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.config.busy_timeout_ms}")
            if self.config.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            yield conn
        except sqlite3.IntegrityError as e:
            raise VersionConflictError(f"Version already assigned in stream '{self.stream}': {e}") from e
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                raise StorageTimeoutError(f"SQLite database busy: {e}") from e
            raise StorageError(f"SQLite operation failed: {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"SQLite operation failed: {e}") from e
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS versionstream (
                stream TEXT NOT NULL,
                version INTEGER NOT NULL,
                type TEXT NOT NULL,
                entity_id INTEGER NOT NULL,
                data TEXT,
                PRIMARY KEY (stream, version)
            );

            CREATE INDEX IF NOT EXISTS idx_versionstream_entity
                ON versionstream(stream, type, entity_id, version);
        """)

    async def connect(self) -> None:
        """Create the database file and schema if needed."""
        if self._connected:
            return

        Path(self.config.path).parent.mkdir(parents=True, exist_ok=True)

        try:
            with self._get_connection() as conn:
                self._create_schema(conn)
        except StorageConnectionError:
            raise
        except StorageError as e:
            raise StorageConnectionError(f"Failed to initialize SQLite log: {e}") from e

        self._connected = True
        logger.info(
            "Connected to SQLite log",
            extra={"path": self.config.path, "stream": self.stream},
        )

    async def close(self) -> None:
        self._connected = False

    def _check_connected(self) -> None:
        if not self._connected:
            raise StorageConnectionError("Not connected")

    async def latest_version(self) -> int | None:
        self._check_connected()
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT MAX(version) AS version FROM versionstream WHERE stream = ?",
                (self.stream,),
            ).fetchone()
        return row["version"]

    async def versions_in_range(self, from_version: int, to_version: int) -> list[VersionRecord]:
        self._check_connected()
        if from_version > to_version:
            return []

        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT type, entity_id, MAX(version) AS version
                FROM versionstream
                WHERE stream = ? AND version >= ? AND version <= ?
                GROUP BY type, entity_id
                """,
                (self.stream, from_version, to_version),
            ).fetchall()

        return [
            VersionRecord(key=EntityKey(row["type"], row["entity_id"]), version=row["version"])
            for row in rows
        ]

    async def snapshot_at(self, key: EntityKey, version: int) -> Snapshot:
        self._check_connected()
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT data FROM versionstream
                WHERE stream = ? AND version = ? AND type = ? AND entity_id = ?
                """,
                (self.stream, version, key.type_tag, key.entity_id),
            ).fetchone()

            if row is None:
                raise ContractViolationError(
                    f"{key} was not written at version {version}", key=key, version=version
                )

            previous = conn.execute(
                """
                SELECT MAX(version) AS version FROM versionstream
                WHERE stream = ? AND type = ? AND entity_id = ? AND version < ?
                """,
                (self.stream, key.type_tag, key.entity_id, version),
            ).fetchone()

        return Snapshot(data=row["data"], previous_version=previous["version"])

    async def append(self, key: EntityKey, data: str | None) -> int:
        self._check_connected()
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute(
                        """
                        INSERT INTO versionstream (stream, version, type, entity_id, data)
                        SELECT ?, COALESCE(MAX(version) + 1, 0), ?, ?, ?
                        FROM versionstream WHERE stream = ?
                        """,
                        (self.stream, key.type_tag, key.entity_id, data, self.stream),
                    )
                    version = conn.execute(
                        "SELECT MAX(version) AS version FROM versionstream WHERE stream = ?",
                        (self.stream,),
                    ).fetchone()["version"]
                    conn.execute("COMMIT")
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise

        logger.debug(
            "Record appended to SQLite log",
            extra={"stream": self.stream, "key": str(key), "version": version},
        )
        return version

    async def clear(self) -> None:
        """Delete every record of this stream."""
        self._check_connected()
        with self._get_connection() as conn:
            conn.execute("DELETE FROM versionstream WHERE stream = ?", (self.stream,))
        logger.info(f"Cleared SQLite log stream '{self.stream}'")
