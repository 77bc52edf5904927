"""
Codec registry for versionstream.

The CodecRegistry is the closed set of entity kinds a snapshot cache
understands. It provides:
- Registration of codecs by type tag
- Lookup by tag or by model type
- Encode/decode through the registered codec
- Freeze mechanism to close the set before serving reads

Invariants:
    - Registry is mutable during startup, frozen before a cache uses it
    - Once frozen, no new kinds can be registered
    - Tags and model types are unique across the registry
    - An unknown tag is an error, never silently skipped

How to change safely:
    - Register all kinds before calling freeze()
    - Adding a kind is a new register() call, never runtime introspection

Example:
    >>> registry = CodecRegistry()
    >>> registry.register(json_codec("ActivityGroup", ActivityGroup))
    >>> registry.freeze()
    'sha256:...'
    >>> registry.decode("ActivityGroup", raw)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Any, Dict, Iterator, Optional

from .types import EntityCodec

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when attempting to register a duplicate tag or model."""
    pass


class UnsupportedTypeError(Exception):
    """Type tag is not known to the registry.

    Raised for tags met in the log during catch-up as well as for tags
    passed by callers. Skipping such records would make get_all
    incomplete, so they always surface.
    """

    def __init__(self, type_tag: str) -> None:
        super().__init__(f"Unsupported entity type: {type_tag!r}")
        self.type_tag = type_tag


class PayloadDecodeError(Exception):
    """A payload in the log could not be decoded by its kind's codec.

    The record is corrupt or was written by an incompatible version of
    the model. Like UnsupportedTypeError it is never skipped: a cache
    that dropped the record would answer with an older state.
    """

    def __init__(self, type_tag: str, reason: str) -> None:
        super().__init__(f"Cannot decode {type_tag!r} payload: {reason}")
        self.type_tag = type_tag


class CodecRegistry:
    """Closed registry of entity kinds and their codecs.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free

    Attributes:
        frozen: Whether the registry is frozen (immutable)
        fingerprint: SHA-256 hash of the registered tags (computed on freeze)
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable registry."""
        self._by_tag: Dict[str, EntityCodec] = {}
        self._by_model: Dict[type, EntityCodec] = {}
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the registry is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Registry fingerprint (available after freeze)."""
        return self._fingerprint

    def register(self, codec: EntityCodec) -> None:
        """Register a codec.

        Args:
            codec: Codec for one entity kind

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If the tag or model is already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register entity type '{codec.tag}': registry is frozen"
                )

            if codec.tag in self._by_tag:
                raise DuplicateRegistrationError(f"Type tag '{codec.tag}' already registered")

            if codec.model in self._by_model:
                existing = self._by_model[codec.model]
                raise DuplicateRegistrationError(
                    f"Model {codec.model.__name__} already registered as '{existing.tag}'"
                )

            self._by_tag[codec.tag] = codec
            self._by_model[codec.model] = codec
            logger.debug(f"Registered entity type: {codec.tag}")

    def get(self, type_tag: str) -> Optional[EntityCodec]:
        """Get a codec by tag, or None."""
        return self._by_tag.get(type_tag)

    def require(self, type_tag: str) -> EntityCodec:
        """Get a codec by tag.

        Raises:
            UnsupportedTypeError: If the tag is not registered
        """
        codec = self._by_tag.get(type_tag)
        if codec is None:
            raise UnsupportedTypeError(type_tag)
        return codec

    def codec_for(self, entity: Any) -> EntityCodec:
        """Get the codec registered for an entity's model type.

        Raises:
            UnsupportedTypeError: If the model is not registered
        """
        codec = self._by_model.get(type(entity))
        if codec is None:
            raise UnsupportedTypeError(type(entity).__name__)
        return codec

    def __contains__(self, type_tag: object) -> bool:
        return type_tag in self._by_tag

    def __len__(self) -> int:
        return len(self._by_tag)

    def tags(self) -> Iterator[str]:
        """Iterate over registered tags in sorted order."""
        yield from sorted(self._by_tag)

    def encode(self, entity: Any) -> tuple[str, str]:
        """Encode an entity.

        Returns:
            (type_tag, encoded payload)
        """
        codec = self.codec_for(entity)
        return codec.tag, codec.encode(entity)

    def decode(self, type_tag: str, raw: str) -> Any:
        """Decode a raw payload for a tag.

        Raises:
            UnsupportedTypeError: If the tag is not registered
            PayloadDecodeError: If the codec rejects the payload
        """
        codec = self.require(type_tag)
        try:
            return codec.decode(raw)
        except (ValueError, TypeError, KeyError) as e:
            raise PayloadDecodeError(type_tag, str(e)) from e

    def freeze(self) -> str:
        """Freeze the registry and compute its fingerprint.

        Returns:
            Fingerprint string in format 'sha256:<hash>'

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            canonical = json.dumps(
                {tag: codec.model.__name__ for tag, codec in self._by_tag.items()},
                sort_keys=True,
                separators=(",", ":"),
            )
            self._fingerprint = f"sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"
            self._frozen = True
            logger.info(
                f"Codec registry frozen with {len(self._by_tag)} entity types, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint
