# SPDX-License-Identifier: Apache-2.0
"""Fake implementations of repositories and collaborators for testing."""

from __future__ import annotations

from .collaborators import (
    FakeBlobStore,
    FakeEntityStore,
    FakeEntityStoreFactory,
    FakeJobExecution,
    FakeScheduler,
)
from .events import FakeEventBus
from .repositories import FakeFileImportJobRepository, FakeImportJobRepository

__all__ = [
    "FakeImportJobRepository",
    "FakeFileImportJobRepository",
    "FakeScheduler",
    "FakeJobExecution",
    "FakeEntityStore",
    "FakeEntityStoreFactory",
    "FakeBlobStore",
    "FakeEventBus",
]
