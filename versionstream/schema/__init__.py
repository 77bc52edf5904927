"""
Schema module for versionstream.

This module provides the closed set of entity kinds a cache understands:
- Entity keys and the tombstone marker
- Codecs binding a type tag to encode/decode functions
- The codec registry consulted by tag
- Built-in catalogue kinds

Invariants:
    - Type tags are immutable once records have been written with them
    - All kinds must be registered before a cache starts reading
"""

from .domain import (
    ACTIVITY_DEFINITION,
    ACTIVITY_GROUP,
    ActivityDefinition,
    ActivityGroup,
    default_registry,
)
from .registry import (
    CodecRegistry,
    DuplicateRegistrationError,
    PayloadDecodeError,
    RegistryFrozenError,
    UnsupportedTypeError,
)
from .types import TOMBSTONE, EntityCodec, EntityKey, Tombstone, json_codec

__all__ = [
    # Types
    "EntityKey",
    "EntityCodec",
    "Tombstone",
    "TOMBSTONE",
    "json_codec",
    # Registry
    "CodecRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    "UnsupportedTypeError",
    "PayloadDecodeError",
    # Built-in kinds
    "ActivityDefinition",
    "ActivityGroup",
    "ACTIVITY_DEFINITION",
    "ACTIVITY_GROUP",
    "default_registry",
]
