# SPDX-License-Identifier: Apache-2.0
"""Import error taxonomy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .value_objects import WriteEvent


class ImportPipelineError(Exception):
    """Base exception for the bulk import engine."""

    pass


class ConfigurationError(ImportPipelineError):
    """Raised when an import request is missing or has invalid input."""

    pass


class NotFoundError(ImportPipelineError):
    """Raised when the organization or application of an import does not exist."""

    pass


class ParseError(ImportPipelineError):
    """Raised when a source stream is malformed or truncated.

    ``record_index`` is the zero-based position of the record being read when
    the stream broke, if known.
    """

    def __init__(self, message: str, record_index: Optional[int] = None):
        super().__init__(message)
        self.record_index = record_index


class WriteError(ImportPipelineError):
    """Raised when a single write event cannot be applied to the store."""

    def __init__(self, message: str, event: Optional["WriteEvent"] = None):
        super().__init__(message)
        self.event = event


class SchedulingError(ImportPipelineError):
    """Raised when the scheduler collaborator cannot accept a job."""

    pass


class SourceRetrievalError(ImportPipelineError):
    """Raised when source files cannot be listed or fetched from blob storage."""

    pass
