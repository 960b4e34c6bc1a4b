# SPDX-License-Identifier: Apache-2.0
"""Base domain entities.

Entities are objects that have identity and lifecycle. They are distinguished
by their identity rather than their attributes and can change over time while
maintaining their identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from .events import DomainEvent


@dataclass(frozen=True)
class EntityId:
    """Base class for entity identifiers."""

    value: UUID

    @classmethod
    def generate(cls) -> EntityId:
        """Generate a new unique entity ID."""
        return cls(uuid4())

    @classmethod
    def from_string(cls, raw: str) -> EntityId:
        """Parse an identifier from its string form."""
        return cls(UUID(str(raw)))

    def __str__(self) -> str:
        return str(self.value)


class Entity:
    """Base class for all domain entities.

    Entities are objects that have identity and can change over time.
    They are distinguished by their identity rather than their attributes.
    The version is used by repositories for optimistic concurrency control.
    """

    def __init__(self, id: EntityId, version: int = 1):
        self._id = id
        self._version = version
        self._domain_events: List[DomainEvent] = []

    @property
    def id(self) -> EntityId:
        """Get the entity's unique identifier."""
        return self._id

    @property
    def version(self) -> int:
        """Get the entity's version for optimistic concurrency control."""
        return self._version

    def increment_version(self) -> None:
        """Advance the version after a successful write. Called by repositories."""
        self._version += 1

    @property
    def domain_events(self) -> List[DomainEvent]:
        """Get domain events raised since the last publish."""
        return self._domain_events.copy()

    def clear_domain_events(self) -> None:
        self._domain_events.clear()

    def _add_domain_event(self, event: DomainEvent) -> None:
        self._domain_events.append(event)

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID."""
        return isinstance(other, Entity) and self._id == other._id

    def __hash__(self) -> int:
        """Hash based on entity ID."""
        return hash(self._id)
