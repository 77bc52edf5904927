"""
DynamoDB versioned log backend.

This module stores the log in a DynamoDB table using aiobotocore for
async operations.

Table layout (pk = partition key, sk = sort key):

    +--------------------+-------------------+---+----+-----+----+
    | pk                 | sk                | t | i  | d   | p  |
    +--------------------+-------------------+---+----+-----+----+
    | <stream>           | b10               | T | 42 | ... | 7  |   log records
    |                    | b11               | T | 43 | ... |    |
    | <stream>#head      | T#42              |   |    |     |    |   v = 10
    +--------------------+-------------------+---+----+-----+----+

    - Log records: sk is the version encoded with sortable_version(),
      t/i the entity key, d the payload (absent for a tombstone), p the
      previous version of the same key (absent for a first record)
    - Head items: latest version per entity, used to fill p on append

Invariants:
    - Numeric and lexicographic order of sort keys coincide
    - A log record is written with attribute_not_exists(pk), so two
      appenders can never claim the same version
    - The log record and the head item are written in one transaction
    - latest_version() uses consistent reads; an eventually consistent
      read could miss the previous append and compute a taken version

How to change safely:
    - Test against DynamoDB Local before deploying to AWS
    - Never change sortable_version(); existing sort keys depend on it
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiobotocore.session import get_session
from botocore.exceptions import ClientError, EndpointConnectionError

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

HEAD_SUFFIX = "#head"


def sortable_version(version: int) -> str:
    """Encode a version so that string order matches numeric order.

    The digits are prefixed with one character encoding their count:
    'a' + number of digits. So 7 -> 'b7', 10 -> 'c10', 123 -> 'd123'.

    Raises:
        ValueError: For negative versions
    """
    if version < 0:
        raise ValueError(f"Version must be non-negative, got {version}")
    digits = str(version)
    return chr(ord("a") + len(digits)) + digits


def parse_sortable_version(sort_key: str) -> int:
    """Inverse of sortable_version()."""
    digits = sort_key[1:]
    if not digits or len(digits) != ord(sort_key[0]) - ord("a"):
        raise ValueError(f"Malformed version sort key: {sort_key!r}")
    return int(digits)


class DynamoDbVersionedLog:
    """DynamoDB implementation of the VersionedLog protocol.

    Attributes:
        config: DynamoDbConfig instance
        stream: Partition key of this log

    Example:
        >>> log = DynamoDbVersionedLog(DynamoDbConfig(table="versionstream"))
        >>> await log.connect()
        >>> await log.latest_version()
        None
    """

    def __init__(self, config: Any, client: Any = None) -> None:
        """Initialize DynamoDB log.

        Args:
            config: DynamoDbConfig instance
            client: Pre-built DynamoDB client; when given, connect() does
                not create one and close() does not close it
        """
        self.config = config
        self.stream = config.stream
        self._session = None
        self._client_ctx = None
        self._client = client
        self._owns_client = client is None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Create the client and verify the table exists.

        Raises:
            StorageConnectionError: If connection fails
        """
        if self._connected:
            return

        try:
            if self._client is None:
                self._session = get_session()

                client_config = {"region_name": self.config.region}
                if self.config.endpoint_url:
                    client_config["endpoint_url"] = self.config.endpoint_url

                self._client_ctx = self._session.create_client("dynamodb", **client_config)
                self._client = await self._client_ctx.__aenter__()

            await self._client.describe_table(TableName=self.config.table)

            self._connected = True
            logger.info(
                "Connected to DynamoDB",
                extra={
                    "table": self.config.table,
                    "stream": self.stream,
                    "region": self.config.region,
                    "endpoint": self.config.endpoint_url or "AWS",
                },
            )

        except EndpointConnectionError as e:
            raise StorageConnectionError(f"Failed to connect to DynamoDB endpoint: {e}") from e
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                raise StorageConnectionError(
                    f"DynamoDB table '{self.config.table}' not found"
                ) from e
            raise StorageConnectionError(f"DynamoDB error: {e}") from e

    async def close(self) -> None:
        """Close the client if this log created it."""
        if self._owns_client and self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing DynamoDB client: {e}")
            self._client = None
            self._client_ctx = None

        self._session = None
        self._connected = False
        logger.info("DynamoDB connection closed")

    async def latest_version(self) -> int | None:
        response = await self._call(
            "query",
            TableName=self.config.table,
            KeyConditionExpression="pk = :pk",
            ExpressionAttributeValues={":pk": {"S": self.stream}},
            ScanIndexForward=False,
            Limit=1,
            # Must be consistent: under contention an append that is not yet
            # visible here would make the next append reuse its version
            ConsistentRead=True,
        )
        items = response.get("Items", [])
        if not items:
            return None
        return parse_sortable_version(items[0]["sk"]["S"])

    async def versions_in_range(self, from_version: int, to_version: int) -> list[VersionRecord]:
        if from_version > to_version or to_version < 0:
            return []

        latest: dict[EntityKey, int] = {}
        kwargs: dict[str, Any] = {
            "TableName": self.config.table,
            "KeyConditionExpression": "pk = :pk AND sk BETWEEN :lo AND :hi",
            "ExpressionAttributeValues": {
                ":pk": {"S": self.stream},
                ":lo": {"S": sortable_version(max(from_version, 0))},
                ":hi": {"S": sortable_version(to_version)},
            },
            "ProjectionExpression": "#sk, #t, #i",
            "ExpressionAttributeNames": {"#sk": "sk", "#t": "t", "#i": "i"},
            "ConsistentRead": True,
        }

        while True:
            response = await self._call("query", **kwargs)
            for item in response.get("Items", []):
                key = EntityKey(item["t"]["S"], int(item["i"]["N"]))
                version = parse_sortable_version(item["sk"]["S"])
                if version > latest.get(key, -1):
                    latest[key] = version

            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key

        return [VersionRecord(key=key, version=version) for key, version in latest.items()]

    async def snapshot_at(self, key: EntityKey, version: int) -> Snapshot:
        if version < 0:
            raise ContractViolationError(
                f"{key} was not written at version {version}", key=key, version=version
            )

        response = await self._call(
            "get_item",
            TableName=self.config.table,
            Key={"pk": {"S": self.stream}, "sk": {"S": sortable_version(version)}},
            ConsistentRead=True,
        )
        item = response.get("Item")
        if (
            item is None
            or item["t"]["S"] != key.type_tag
            or int(item["i"]["N"]) != key.entity_id
        ):
            raise ContractViolationError(
                f"{key} was not written at version {version}", key=key, version=version
            )

        data = item["d"]["S"] if "d" in item else None
        previous = int(item["p"]["N"]) if "p" in item else None
        return Snapshot(data=data, previous_version=previous)

    async def append(self, key: EntityKey, data: str | None) -> int:
        latest = await self.latest_version()
        version = 0 if latest is None else latest + 1
        previous = await self._head_version(key)

        record: dict[str, Any] = {
            "pk": {"S": self.stream},
            "sk": {"S": sortable_version(version)},
            "t": {"S": key.type_tag},
            "i": {"N": str(key.entity_id)},
        }
        if data is not None:
            record["d"] = {"S": data}
        if previous is not None:
            record["p"] = {"N": str(previous)}

        head_put: dict[str, Any] = {
            "TableName": self.config.table,
            "Item": {
                "pk": {"S": self.stream + HEAD_SUFFIX},
                "sk": {"S": _head_sort_key(key)},
                "v": {"N": str(version)},
            },
        }
        if previous is None:
            head_put["ConditionExpression"] = "attribute_not_exists(pk)"
        else:
            head_put["ConditionExpression"] = "v = :prev"
            head_put["ExpressionAttributeValues"] = {":prev": {"N": str(previous)}}

        try:
            await self._call(
                "transact_write_items",
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.config.table,
                            "Item": record,
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                    {"Put": head_put},
                ],
            )
        except StorageError as e:
            cause = e.__cause__
            if isinstance(cause, ClientError) and _error_code(cause) in (
                "TransactionCanceledException",
                "ConditionalCheckFailedException",
            ):
                raise VersionConflictError(
                    f"Version {version} of stream '{self.stream}' was claimed concurrently"
                ) from cause
            raise

        logger.debug(
            "Record appended to DynamoDB log",
            extra={"stream": self.stream, "key": str(key), "version": version},
        )
        return version

    async def _head_version(self, key: EntityKey) -> int | None:
        response = await self._call(
            "get_item",
            TableName=self.config.table,
            Key={"pk": {"S": self.stream + HEAD_SUFFIX}, "sk": {"S": _head_sort_key(key)}},
            ConsistentRead=True,
        )
        item = response.get("Item")
        return int(item["v"]["N"]) if item else None

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        """Invoke a client operation with timeout and error translation."""
        if not self._connected:
            raise StorageConnectionError("Not connected to DynamoDB")

        try:
            return await asyncio.wait_for(
                getattr(self._client, operation)(**kwargs),
                timeout=self.config.request_timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise StorageTimeoutError(f"DynamoDB {operation} timed out") from e
        except ClientError as e:
            if _error_code(e) == "ProvisionedThroughputExceededException":
                raise StorageTimeoutError("DynamoDB throughput exceeded") from e
            raise StorageError(f"DynamoDB {operation} failed: {e}") from e


def _head_sort_key(key: EntityKey) -> str:
    return f"{key.type_tag}#{key.entity_id}"


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")
