# SPDX-License-Identifier: Apache-2.0
"""In-memory event bus implementation.

Delivery is synchronous on the publishing thread. Subscriptions are kept per
instance and guarded by a lock because job controllers publish from
scheduler worker threads.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List, Type

from importpipe.domain.events import DomainEvent, IEventBus

Subscriber = Callable[[DomainEvent], None]

logger = logging.getLogger(__name__)


class InMemoryEventBus(IEventBus):
    """Simple in-memory event bus for domain events."""

    def __init__(self) -> None:
        self._subs: Dict[Type[DomainEvent], List[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, etype: Type[DomainEvent], fn: Subscriber) -> None:
        """Subscribe a function to handle events of a specific type."""
        with self._lock:
            self._subs[etype].append(fn)

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers of its exact type."""
        with self._lock:
            subscribers = list(self._subs[type(event)])
        for fn in subscribers:
            fn(event)

    def clear_subscriptions(self) -> None:
        """Clear all subscriptions (useful for testing)."""
        with self._lock:
            self._subs.clear()


__all__ = ["InMemoryEventBus"]
