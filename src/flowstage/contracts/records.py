"""Flow records and relationships.

These types answer: "What flows through a stage, and where can it go?"
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from flowstage.contracts.types import RecordID, RelationshipName


def new_record_id() -> RecordID:
    """Generate a fresh logical record identity."""
    return RecordID(uuid.uuid4().hex)


def _freeze_attributes(attributes: Mapping[str, str]) -> Mapping[str, str]:
    for key, value in attributes.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise TypeError(f"Record attributes must map str to str, got {key!r}: {type(value).__name__}")
    return MappingProxyType(dict(attributes))


@dataclass(frozen=True)
class FlowRecord:
    """A handle to one revision of a flow record.

    Records are immutable. Every attribute or content change made through a
    session produces a new FlowRecord with the same ``record_id`` and the
    next ``revision``; the previous handle is stale from then on.

    Attributes:
        record_id: Stable logical identity
        revision: Handle generation, starts at 0 when the record enters a queue
            or is created in a session
        attributes: Read-only string-to-string mapping
        content_hash: Content-store key, or None for empty content
        size: Content length in bytes
    """

    record_id: RecordID
    revision: int = 0
    attributes: Mapping[str, str] = field(default_factory=dict)
    content_hash: str | None = None
    size: int = 0

    def __post_init__(self) -> None:
        if self.revision < 0:
            raise ValueError(f"revision must be >= 0, got {self.revision}")
        if self.size < 0:
            raise ValueError(f"size must be >= 0, got {self.size}")
        if self.content_hash is None and self.size != 0:
            raise ValueError("A record without content must have size 0")
        # Frozen dataclass: bypass __setattr__ to install the read-only view
        object.__setattr__(self, "attributes", _freeze_attributes(self.attributes))

    @property
    def has_content(self) -> bool:
        return self.content_hash is not None

    def get(self, key: str, default: str | None = None) -> str | None:
        """Look up an attribute value."""
        return self.attributes.get(key, default)

    def with_attributes(self, attributes: Mapping[str, str]) -> FlowRecord:
        """Return the next revision with ``attributes`` merged in."""
        return replace(self, revision=self.revision + 1, attributes={**self.attributes, **attributes})

    def without_attribute(self, key: str) -> FlowRecord:
        """Return the next revision with ``key`` removed (no-op removal still bumps revision)."""
        remaining = {k: v for k, v in self.attributes.items() if k != key}
        return replace(self, revision=self.revision + 1, attributes=remaining)

    def with_content(self, content_hash: str | None, size: int) -> FlowRecord:
        """Return the next revision pointing at new content."""
        return replace(self, revision=self.revision + 1, content_hash=content_hash, size=size)


@dataclass(frozen=True)
class Relationship:
    """A named outbound channel.

    Identity is the name: two relationships with the same name are equal
    regardless of description.
    """

    name: RelationshipName
    description: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Relationship name must be non-empty")

    @classmethod
    def named(cls, name: str, description: str = "") -> Relationship:
        return cls(name=RelationshipName(name), description=description)


REL_SUCCESS = Relationship.named("success", "Records that were transformed successfully")
REL_FAILURE = Relationship.named("failure", "Records that could not be read or transformed")
