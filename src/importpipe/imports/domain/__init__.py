# SPDX-License-Identifier: Apache-2.0
"""Import domain layer."""

from __future__ import annotations

from .entities import FileImportJob, ImportJob, JobState, TerminationReason
from .services import aggregate_import_state, prepare_path_prefix, resolve_scope
from .value_objects import (
    ConnectionWrite,
    DictionaryWrite,
    DispatchSettings,
    EntityRef,
    EntityWrite,
    ImportScope,
    ScopeType,
    SourceFile,
    WriteEvent,
)

__all__ = [
    "ImportJob",
    "FileImportJob",
    "JobState",
    "TerminationReason",
    "EntityRef",
    "EntityWrite",
    "ConnectionWrite",
    "DictionaryWrite",
    "WriteEvent",
    "ImportScope",
    "ScopeType",
    "SourceFile",
    "DispatchSettings",
    "prepare_path_prefix",
    "resolve_scope",
    "aggregate_import_state",
]
