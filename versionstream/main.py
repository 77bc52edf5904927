"""
versionstream command line entry point.

Point-in-time reads against a configured log:

Usage:
    versionstream latest
    versionstream get ActivityGroup 3 --at 120
    versionstream get-all ActivityDefinition

Without --at, reads are made as of the log's latest version.
Configuration is entirely via environment variables, see config.py.

Exit codes:
    0: success
    1: entity not found, or the log is empty
    2: usage error or unsupported entity type
    3: log backend failure
    4: a record in the log cannot be decoded
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

import json_log_formatter

from .cache import SnapshotCache
from .config import ServiceConfig
from .log import StorageError, VersionedLog, create_versioned_log
from .schema import EntityKey, PayloadDecodeError, UnsupportedTypeError, default_registry

logger = logging.getLogger(__name__)


def setup_logging(config: ServiceConfig) -> None:
    """Configure logging based on configuration.

    Logs go to stderr so that stdout stays parseable JSON.
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="versionstream",
        description="Point-in-time reads from a versioned entity log",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("latest", help="Print the latest version of the log")

    get_parser = subparsers.add_parser("get", help="Read one entity as of a version")
    get_parser.add_argument("type_tag", help="Entity type, e.g. ActivityGroup")
    get_parser.add_argument("entity_id", type=int, help="Entity identifier")
    get_parser.add_argument("--at", type=int, default=None, help="Version (default: latest)")

    all_parser = subparsers.add_parser("get-all", help="Read all live entities of a type")
    all_parser.add_argument("type_tag", help="Entity type, e.g. ActivityGroup")
    all_parser.add_argument("--at", type=int, default=None, help="Version (default: latest)")

    return parser


def _to_json(payload: Any) -> Any:
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return dataclasses.asdict(payload)
    return payload


def _emit(document: dict[str, Any]) -> None:
    print(json.dumps(document, indent=2, sort_keys=True))


async def _resolve_version(log: VersionedLog, requested: int | None) -> int | None:
    if requested is not None:
        return requested
    return await log.latest_version()


async def run(args: argparse.Namespace, config: ServiceConfig) -> int:
    """Execute a parsed command against the configured log.

    Returns:
        Process exit code
    """
    log = create_versioned_log(config)
    await log.connect()
    try:
        version = await _resolve_version(log, getattr(args, "at", None))
        if version is None:
            _emit({"error": "log is empty"})
            return 1

        if args.command == "latest":
            _emit({"version": version})
            return 0

        cache = SnapshotCache(log, default_registry())

        if args.command == "get":
            key = EntityKey(args.type_tag, args.entity_id)
            payload = await cache.get(key, version)
            if payload is None:
                _emit({"error": "not found", "key": str(key), "version": version})
                return 1
            _emit({"key": str(key), "version": version, "data": _to_json(payload)})
            return 0

        entities = await cache.get_all(args.type_tag, version)
        _emit(
            {
                "type": args.type_tag,
                "version": version,
                "entities": {str(entity_id): _to_json(payload) for entity_id, payload in entities},
            }
        )
        return 0
    finally:
        await log.close()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = ServiceConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config)
    config.log_config()

    try:
        return asyncio.run(run(args, config))
    except UnsupportedTypeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except StorageError as e:
        logger.error(f"Log backend failure: {e}")
        return 3
    except PayloadDecodeError as e:
        logger.error(f"Undecodable record: {e}")
        return 4


if __name__ == "__main__":
    sys.exit(main())
