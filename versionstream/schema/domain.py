"""
Built-in entity kinds.

Reference data kinds carried by the activity catalogue log:
- ActivityGroup: a group of activities
- ActivityDefinition: an activity belonging to a group

Field names follow the upstream catalogue tables so that bulk loads can
map rows one-to-one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .registry import CodecRegistry
from .types import json_codec


@dataclass(frozen=True)
class ActivityDefinition:
    id: int
    activity_code: str
    description_dutch: str
    description_english: str
    description_french: str
    description_german: str
    filters: bool
    maxNumberOfParts: str
    kilometrage: bool
    activityGroupId: int
    active: bool
    activityDefinitionUnit: Optional[str]
    selectable: bool


@dataclass(frozen=True)
class ActivityGroup:
    id: int
    groupCode: str
    description_dutch: str
    description_english: str
    description_french: str
    description_german: str
    active: bool


ACTIVITY_DEFINITION = json_codec("ActivityDefinition", ActivityDefinition)
ACTIVITY_GROUP = json_codec("ActivityGroup", ActivityGroup)


def default_registry() -> CodecRegistry:
    """Create a frozen registry holding the built-in kinds."""
    registry = CodecRegistry()
    registry.register(ACTIVITY_DEFINITION)
    registry.register(ACTIVITY_GROUP)
    registry.freeze()
    return registry
