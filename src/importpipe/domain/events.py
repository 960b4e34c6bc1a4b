# SPDX-License-Identifier: Apache-2.0
"""Domain event base types.

Domain events represent important business occurrences that other parts
of the system may need to react to. They enable loose coupling between
the import engine and observers such as metrics collection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Protocol


class IEventBus(Protocol):
    """Protocol for event bus implementations.

    This interface defines the contract that any event bus implementation
    must follow, enabling dependency inversion in the domain layer.
    """

    def subscribe(self, etype: type[DomainEvent], fn: Callable[[DomainEvent], None]) -> None:
        """Subscribe a function to handle events of a specific type.

        Args:
            etype: The type of domain event to subscribe to
            fn: Function that will handle events of this type
        """
        ...

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers.

        Args:
            event: The domain event to publish
        """
        ...


class DomainEvent(ABC):
    """Base class for all domain events.

    Domain events represent significant business occurrences that have
    already happened and may be of interest to other parts of the system.
    Concrete events are frozen dataclasses that declare ``event_id`` and
    ``occurred_at`` fields.
    """

    @property
    @abstractmethod
    def event_type(self) -> str:
        """Unique identifier for the event type."""
        pass

    @property
    @abstractmethod
    def aggregate_id(self) -> str:
        """Identifier of the aggregate that generated this event."""
        pass

    @abstractmethod
    def _get_event_data(self) -> dict[str, Any]:
        """Get event-specific data for serialization."""
        pass

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event including its envelope fields."""
        return {
            "event_type": self.event_type,
            "event_id": str(self.event_id),
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at.isoformat(),
            "data": self._get_event_data(),
        }

    def __str__(self) -> str:
        return f"{self.event_type}(id={self.event_id}, aggregate={self.aggregate_id})"
