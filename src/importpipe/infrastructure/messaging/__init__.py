# SPDX-License-Identifier: Apache-2.0
"""Messaging infrastructure."""

from .in_memory_bus import InMemoryEventBus

__all__ = ["InMemoryEventBus"]
