"""
Typed polymorphic entity references.

Notifications and audit rows point at "some entity" through an
``entity_type`` / ``entity_id`` column pair.  In code that pair travels as an
``EntityRef`` so a bare id can never be passed without its kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EntityKind(str, Enum):
    INCIDENT = "incident"
    ACTION_ITEM = "actionItem"
    TIMELINE = "timeline"
    PROFILE = "profile"
    DIGEST = "digest"
    AUTOMATION = "automation"


@dataclass(frozen=True)
class EntityRef:
    """A (kind, id) reference to one row of one of the entity tables."""

    kind: EntityKind
    id: int

    @classmethod
    def incident(cls, incident_id: int) -> EntityRef:
        return cls(EntityKind.INCIDENT, incident_id)

    @classmethod
    def action_item(cls, item_id: int) -> EntityRef:
        return cls(EntityKind.ACTION_ITEM, item_id)

    @classmethod
    def digest(cls, digest_id: int) -> EntityRef:
        return cls(EntityKind.DIGEST, digest_id)

    @classmethod
    def parse(cls, entity_type: str, entity_id) -> EntityRef:
        """Build a reference from stored column values.

        Raises ValueError for an unknown kind or a non-integer id.
        """
        return cls(EntityKind(entity_type), int(entity_id))

    def __str__(self) -> str:
        return f"{self.kind.value}/{self.id}"
