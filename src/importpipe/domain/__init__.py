# SPDX-License-Identifier: Apache-2.0
"""Shared kernel for importpipe bounded contexts."""

from __future__ import annotations

from .entities import Entity, EntityId
from .events import DomainEvent, IEventBus

__all__ = ["Entity", "EntityId", "DomainEvent", "IEventBus"]
