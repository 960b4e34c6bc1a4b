# SPDX-License-Identifier: Apache-2.0
"""Bulk import bounded context.

Replays exported datasets from blob storage into the entity store. The
top-level :class:`ImportJob` fans out into one :class:`FileImportJob` per
source file; each file is streamed through the event producer and applied by
the write dispatcher, and file outcomes are rolled back up into the parent.
"""

from __future__ import annotations

from .domain.entities import FileImportJob, ImportJob, JobState
from .domain.errors import (
    ConfigurationError,
    ImportPipelineError,
    NotFoundError,
    ParseError,
    SchedulingError,
    SourceRetrievalError,
    WriteError,
)

__all__ = [
    "ImportJob",
    "FileImportJob",
    "JobState",
    "ImportPipelineError",
    "ConfigurationError",
    "NotFoundError",
    "ParseError",
    "WriteError",
    "SchedulingError",
    "SourceRetrievalError",
]
