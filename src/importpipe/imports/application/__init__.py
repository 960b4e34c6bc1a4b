# SPDX-License-Identifier: Apache-2.0
"""Import application layer."""

from __future__ import annotations

from .services import FileImportJobService, ImportAggregator, ImportJobService, update_with_retry

__all__ = ["ImportJobService", "FileImportJobService", "ImportAggregator", "update_with_retry"]
