"""
Data types and validation for catalog metadata.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .entity import EntityId, entity_from_dict
from .errors import BadRequestError

# Keys and tags: letters, digits, underscore, hyphen
_ALLOWED_RE = re.compile(r'[A-Za-z0-9_-]+')
# Values may also contain whitespace, which the indexer splits on
_VALUE_RE = re.compile(r'[A-Za-z0-9_\-\s]+')

MAX_KEY_LENGTH = 50
MAX_VALUE_LENGTH = 50
MAX_TAG_LENGTH = 50

# Tags are indexed under this key, so it cannot name a property
TAGS_KEY = "tags"


class MetadataScope(str, Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


class TargetType(str, Enum):
    """Search result filter. Values match ``EntityId.entity_type``."""

    APP = "application"
    PROGRAM = "program"
    DATASET = "dataset"
    STREAM = "stream"
    VIEW = "view"
    ARTIFACT = "artifact"
    ALL = "all"

    def matches(self, entity: EntityId) -> bool:
        return self is TargetType.ALL or entity.entity_type == self.value


def parse_scope(text: Optional[str]) -> Optional[MetadataScope]:
    """
    Parse a scope name case-insensitively.

    None passes through (meaning both scopes). Anything other than
    "user" or "system" is a bad request.
    """
    if text is None:
        return None
    if isinstance(text, MetadataScope):
        return text
    try:
        return MetadataScope(text.upper())
    except ValueError:
        raise BadRequestError(
            f"Invalid metadata scope {text!r}. Expected one of: user, system"
        ) from None


def parse_target(text: Optional[str]) -> TargetType:
    """Parse a target type by name (APP) or entity type (application). None means ALL."""
    if text is None or text == "":
        return TargetType.ALL
    if isinstance(text, TargetType):
        return text
    folded = text.casefold()
    for member in TargetType:
        if folded in (member.name.casefold(), member.value):
            return member
    raise BadRequestError(
        f"Invalid search target {text!r}. Expected one of: "
        + ", ".join(m.name for m in TargetType)
    )


def _validate_text(
    what: str, text: str, max_length: int, pattern: re.Pattern = _ALLOWED_RE
) -> None:
    if not isinstance(text, str) or not text.strip():
        raise BadRequestError(f"{what} must be a non-empty string")
    if len(text) > max_length:
        raise BadRequestError(
            f"{what} exceeds maximum length of {max_length} characters: {text[:20]!r}..."
        )
    if not pattern.fullmatch(text):
        allowed = "A-Z, a-z, 0-9, _, -" + (", whitespace" if pattern is _VALUE_RE else "")
        raise BadRequestError(
            f"{what} contains invalid characters (allowed: {allowed}): {text!r}"
        )


def validate_property(
    key: str,
    value: str,
    *,
    max_key_length: int = MAX_KEY_LENGTH,
    max_value_length: int = MAX_VALUE_LENGTH,
) -> None:
    """Validate a user property. Raises BadRequestError."""
    _validate_text("Property key", key, max_key_length)
    if key.casefold() == TAGS_KEY:
        raise BadRequestError(
            f"Property key {key!r} is reserved. Use the tags API to add tags"
        )
    _validate_text("Property value", value, max_value_length, _VALUE_RE)


def validate_tag(tag: str, *, max_length: int = MAX_TAG_LENGTH) -> None:
    """Validate a user tag. Raises BadRequestError."""
    _validate_text("Tag", tag, max_length)


@dataclass
class MetadataRecord:
    """
    Properties and tags of one entity in one scope.

    Display form: keys, values and tags keep their original casing.
    """
    entity: EntityId
    scope: MetadataScope
    properties: dict[str, str] = field(default_factory=dict)
    tags: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not self.properties and not self.tags

    def to_dict(self) -> dict:
        return {
            "entityId": self.entity.to_dict(),
            "scope": self.scope.value,
            "properties": dict(self.properties),
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "MetadataRecord":
        return cls(
            entity=entity_from_dict(d["entityId"]),
            scope=MetadataScope(d["scope"]),
            properties=dict(d.get("properties", {})),
            tags=set(d.get("tags", [])),
        )


@dataclass(frozen=True)
class SearchResultRecord:
    """A search hit. Equality is by entity."""
    entity: EntityId

    def to_dict(self) -> dict:
        return {"entityId": self.entity.to_dict()}

    @classmethod
    def from_dict(cls, d: dict) -> "SearchResultRecord":
        return cls(entity=entity_from_dict(d["entityId"]))
