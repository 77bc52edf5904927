"""
Unit tests for the codec registry.

Tests cover:
- Registration and lookup
- Registry freezing and fingerprint
- Duplicate detection
- Encode/decode through codecs
- Built-in catalogue kinds
"""

import json

import pytest

from versionstream.schema import (
    ACTIVITY_GROUP,
    ActivityDefinition,
    ActivityGroup,
    CodecRegistry,
    DuplicateRegistrationError,
    EntityCodec,
    PayloadDecodeError,
    RegistryFrozenError,
    UnsupportedTypeError,
    default_registry,
    json_codec,
)

GROUP = ActivityGroup(
    id=4,
    groupCode="MNT",
    description_dutch="Onderhoud",
    description_english="Maintenance",
    description_french="Entretien",
    description_german="Wartung",
    active=True,
)


class TestCodecRegistry:
    """Tests for CodecRegistry."""

    def test_register_and_lookup(self):
        """Registered codecs are found by tag and by model."""
        registry = CodecRegistry()
        registry.register(ACTIVITY_GROUP)

        assert registry.get("ActivityGroup") is ACTIVITY_GROUP
        assert registry.require("ActivityGroup") is ACTIVITY_GROUP
        assert registry.codec_for(GROUP) is ACTIVITY_GROUP
        assert "ActivityGroup" in registry
        assert len(registry) == 1

    def test_unknown_tag(self):
        """Unknown tags are absent from get() and raise from require()."""
        registry = CodecRegistry()

        assert registry.get("Widget") is None
        with pytest.raises(UnsupportedTypeError, match="Widget"):
            registry.require("Widget")

    def test_unknown_model(self):
        """Encoding an unregistered model raises."""
        registry = CodecRegistry()

        with pytest.raises(UnsupportedTypeError):
            registry.encode(GROUP)

    def test_duplicate_tag_raises(self):
        """Registering a tag twice raises."""
        registry = CodecRegistry()
        registry.register(EntityCodec(tag="Label", model=str, encode=str, decode=str))

        with pytest.raises(DuplicateRegistrationError, match="Label"):
            registry.register(EntityCodec(tag="Label", model=bytes, encode=str, decode=str))

    def test_duplicate_model_raises(self):
        """Registering a model under two tags raises."""
        registry = CodecRegistry()
        registry.register(EntityCodec(tag="Label", model=str, encode=str, decode=str))

        with pytest.raises(DuplicateRegistrationError, match="already registered as 'Label'"):
            registry.register(EntityCodec(tag="Name", model=str, encode=str, decode=str))

    def test_freeze(self):
        """Frozen registries reject registration and refreezing."""
        registry = CodecRegistry()
        registry.register(ACTIVITY_GROUP)

        fingerprint = registry.freeze()

        assert registry.frozen
        assert fingerprint.startswith("sha256:")
        assert registry.fingerprint == fingerprint
        with pytest.raises(RegistryFrozenError):
            registry.register(EntityCodec(tag="Label", model=str, encode=str, decode=str))
        with pytest.raises(RegistryFrozenError):
            registry.freeze()

    def test_fingerprint_is_deterministic(self):
        """Registration order does not change the fingerprint."""
        label = EntityCodec(tag="Label", model=str, encode=str, decode=str)

        first = CodecRegistry()
        first.register(label)
        first.register(ACTIVITY_GROUP)
        second = CodecRegistry()
        second.register(ACTIVITY_GROUP)
        second.register(label)

        assert first.freeze() == second.freeze()

    def test_tags_sorted(self):
        """tags() lists every registered tag in order."""
        registry = default_registry()

        assert list(registry.tags()) == ["ActivityDefinition", "ActivityGroup"]


class TestJsonCodec:
    """Tests for json_codec() and the built-in kinds."""

    def test_encode_decode(self):
        """Dataclass payloads survive the codec."""
        registry = default_registry()

        tag, raw = registry.encode(GROUP)

        assert tag == "ActivityGroup"
        assert json.loads(raw)["groupCode"] == "MNT"
        assert registry.decode(tag, raw) == GROUP

    def test_encoding_is_canonical(self):
        """Keys are sorted so equal entities encode identically."""
        _, raw = default_registry().encode(GROUP)

        assert list(json.loads(raw)) == sorted(json.loads(raw))
        assert ", " not in raw and ": " not in raw

    def test_optional_field(self):
        """Nullable fields decode to None."""
        definition = ActivityDefinition(
            id=10415,
            activity_code="7777",
            description_dutch="Dood",
            description_english="Dood",
            description_french="Dood",
            description_german="Dood",
            filters=True,
            maxNumberOfParts="",
            kilometrage=True,
            activityGroupId=4,
            active=True,
            activityDefinitionUnit=None,
            selectable=True,
        )
        registry = default_registry()

        tag, raw = registry.encode(definition)
        decoded = registry.decode(tag, raw)

        assert decoded.activityDefinitionUnit is None
        assert decoded == definition

    def test_corrupt_payload(self):
        """A payload that is not JSON raises PayloadDecodeError."""
        registry = default_registry()

        with pytest.raises(PayloadDecodeError) as exc_info:
            registry.decode("ActivityGroup", "{not json")

        assert exc_info.value.type_tag == "ActivityGroup"
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)

    @pytest.mark.parametrize(
        "payload",
        [
            {"id": 4, "groupCode": "MNT"},
            dict(json.loads(ACTIVITY_GROUP.encode(GROUP)), colour="red"),
        ],
        ids=["missing-field", "unknown-field"],
    )
    def test_schema_drift(self, payload):
        """Payloads that no longer match the model raise PayloadDecodeError."""
        with pytest.raises(PayloadDecodeError, match="ActivityGroup"):
            default_registry().decode("ActivityGroup", json.dumps(payload))

    def test_requires_dataclass(self):
        """json_codec only accepts dataclass models."""
        with pytest.raises(TypeError):
            json_codec("Label", str)

    def test_empty_tag_rejected(self):
        """Codecs need a tag."""
        with pytest.raises(ValueError):
            EntityCodec(tag="", model=str, encode=str, decode=str)
