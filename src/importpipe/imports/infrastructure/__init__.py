# SPDX-License-Identifier: Apache-2.0
"""Import infrastructure implementations."""

from __future__ import annotations

from .blob_store import LocalBlobStore, S3BlobStore
from .directory import StaticDirectory
from .entity_store import SqliteEntityStore, SqliteEntityStoreFactory
from .repositories import SqliteFileImportJobRepository, SqliteImportJobRepository
from .scheduler import ThreadedJobExecution, ThreadedScheduler

__all__ = [
    "SqliteImportJobRepository",
    "SqliteFileImportJobRepository",
    "SqliteEntityStore",
    "SqliteEntityStoreFactory",
    "LocalBlobStore",
    "S3BlobStore",
    "StaticDirectory",
    "ThreadedScheduler",
    "ThreadedJobExecution",
]
