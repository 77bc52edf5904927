"""
Core type definitions for the versionstream entity model.

This module defines the foundational types shared by the log backends
and the snapshot cache:
- EntityKey: (type_tag, entity_id) pair naming one versioned entity
- EntityCodec: encode/decode pair bound to one entity kind
- TOMBSTONE: marker for a recorded deletion

Invariants:
    - type_tag is a label from the closed set held by a CodecRegistry
    - entity_id is an integer identifier, unique within its type_tag
    - Codecs are pure: decode(encode(x)) == x, no hidden state

How to change safely:
    - Never rename a type_tag once records have been written with it
    - Adding a field to a model requires a default value so that
      older records still decode

Example:
    >>> from versionstream.schema.types import EntityKey, json_codec
    >>> key = EntityKey("ActivityGroup", 3)
    >>> codec = json_codec("ActivityGroup", ActivityGroup)
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, Callable


class Tombstone:
    """Marker for a deleted entity.

    Only one instance exists (TOMBSTONE); compare with ``is``.
    """

    _instance: Tombstone | None = None

    def __new__(cls) -> Tombstone:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "TOMBSTONE"


TOMBSTONE = Tombstone()


@dataclass(frozen=True, order=True)
class EntityKey:
    """Unique name of one versioned entity.

    Attributes:
        type_tag: Entity kind, as registered in the CodecRegistry
        entity_id: Identifier within the kind
    """

    type_tag: str
    entity_id: int

    def __str__(self) -> str:
        return f"{self.type_tag}:{self.entity_id}"


@dataclass(frozen=True)
class EntityCodec:
    """Encode/decode pair for one entity kind.

    Attributes:
        tag: Type tag written to the log for this kind
        model: Python type of decoded payloads
        encode: Payload -> str
        decode: str -> payload
    """

    tag: str
    model: type
    encode: Callable[[Any], str]
    decode: Callable[[str], Any]

    def __post_init__(self) -> None:
        if not self.tag:
            raise ValueError("Codec tag cannot be empty")


def json_codec(tag: str, model: type) -> EntityCodec:
    """Build a JSON codec for a dataclass model.

    Payloads are encoded with sorted keys so that equal entities always
    produce identical log records.

    Args:
        tag: Type tag for the kind
        model: Dataclass type

    Returns:
        EntityCodec bound to the model
    """
    if not dataclasses.is_dataclass(model):
        raise TypeError(f"json_codec requires a dataclass model, got {model!r}")

    def encode(entity: Any) -> str:
        return json.dumps(dataclasses.asdict(entity), sort_keys=True, separators=(",", ":"))

    def decode(raw: str) -> Any:
        return model(**json.loads(raw))

    return EntityCodec(tag=tag, model=model, encode=encode, decode=decode)
