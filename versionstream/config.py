"""
Configuration management for versionstream.

All configuration is done via environment variables.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class LogBackend(Enum):
    """Supported versioned log backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    DYNAMODB = "dynamodb"


@dataclass(frozen=True)
class SqliteConfig:
    """SQLite log backend configuration.

    Attributes:
        path: Database file path
        stream: Name of the log within the database
        busy_timeout_ms: SQLite busy timeout in milliseconds
        wal_mode: SQLite WAL journal mode enabled
    """

    path: str = "versionstream.db"
    stream: str = "versionstream"
    busy_timeout_ms: int = 5000
    wal_mode: bool = True

    @classmethod
    def from_env(cls) -> SqliteConfig:
        """Load configuration from environment variables."""
        return cls(
            path=os.getenv("SQLITE_PATH", "versionstream.db"),
            stream=os.getenv("VERSIONSTREAM_STREAM", "versionstream"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
        )


@dataclass(frozen=True)
class DynamoDbConfig:
    """DynamoDB log backend configuration.

    Attributes:
        table: Table name
        stream: Partition key of the log
        region: AWS region
        endpoint_url: Custom endpoint URL (for DynamoDB Local)
        request_timeout_s: Timeout applied to every DynamoDB call
    """

    table: str = "versionstream"
    stream: str = "versionstream"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    request_timeout_s: float = 30.0

    @classmethod
    def from_env(cls) -> DynamoDbConfig:
        """Load configuration from environment variables."""
        return cls(
            table=os.getenv("DYNAMODB_TABLE", "versionstream"),
            stream=os.getenv("VERSIONSTREAM_STREAM", "versionstream"),
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT_URL"),
            request_timeout_s=float(os.getenv("DYNAMODB_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class ServiceConfig:
    """Complete configuration.

    Attributes:
        backend: Which log backend to use
        sqlite: SQLite configuration (if backend is SQLITE)
        dynamodb: DynamoDB configuration (if backend is DYNAMODB)
        observability: Logging configuration
    """

    backend: LogBackend = LogBackend.SQLITE
    sqlite: SqliteConfig = field(default_factory=SqliteConfig)
    dynamodb: DynamoDbConfig = field(default_factory=DynamoDbConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        backend_str = os.getenv("VERSIONSTREAM_BACKEND", "sqlite").lower()
        try:
            backend = LogBackend(backend_str)
        except ValueError:
            valid = ", ".join(b.value for b in LogBackend)
            raise ValueError(f"Invalid VERSIONSTREAM_BACKEND '{backend_str}'. Must be one of: {valid}")

        config = cls(
            backend=backend,
            sqlite=SqliteConfig.from_env(),
            dynamodb=DynamoDbConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.backend == LogBackend.SQLITE:
            if not self.sqlite.path or self.sqlite.path == ":memory:":
                raise ValueError("SQLITE_PATH must name a database file when VERSIONSTREAM_BACKEND=sqlite")
            if not self.sqlite.stream:
                raise ValueError("VERSIONSTREAM_STREAM cannot be empty")
        elif self.backend == LogBackend.DYNAMODB:
            if not self.dynamodb.table:
                raise ValueError("DYNAMODB_TABLE is required when VERSIONSTREAM_BACKEND=dynamodb")
            if not self.dynamodb.stream:
                raise ValueError("VERSIONSTREAM_STREAM cannot be empty")
            if self.dynamodb.request_timeout_s <= 0:
                raise ValueError("DYNAMODB_TIMEOUT_SECONDS must be positive")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Configuration loaded",
            extra={
                "backend": self.backend.value,
                "sqlite_path": self.sqlite.path if self.backend == LogBackend.SQLITE else None,
                "dynamodb_table": self.dynamodb.table
                if self.backend == LogBackend.DYNAMODB
                else None,
                "dynamodb_endpoint": self.dynamodb.endpoint_url
                if self.backend == LogBackend.DYNAMODB
                else None,
                "stream": self.stream,
                "log_level": self.observability.log_level,
            },
        )

    @property
    def stream(self) -> str | None:
        """Stream name of the selected backend."""
        if self.backend == LogBackend.SQLITE:
            return self.sqlite.stream
        if self.backend == LogBackend.DYNAMODB:
            return self.dynamodb.stream
        return None
