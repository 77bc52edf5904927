"""
Shared fixtures for versionstream tests.

Two small entity kinds keep payload assertions readable:
- Label: payload is a plain string
- Counter: payload is an int
"""

import pytest

from versionstream.schema import CodecRegistry, EntityCodec

LABEL = EntityCodec(tag="Label", model=str, encode=str, decode=str)
COUNTER = EntityCodec(tag="Counter", model=int, encode=str, decode=int)


def make_registry() -> CodecRegistry:
    registry = CodecRegistry()
    registry.register(LABEL)
    registry.register(COUNTER)
    registry.freeze()
    return registry


@pytest.fixture
def registry():
    """Frozen registry with the Label and Counter kinds."""
    return make_registry()
