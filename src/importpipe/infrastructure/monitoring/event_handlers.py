# SPDX-License-Identifier: Apache-2.0
"""Event handlers for automatic metrics collection.

This module subscribes to import domain events and records Prometheus
metrics for job and file lifecycle changes.
"""

from __future__ import annotations

import logging

from importpipe.domain.events import IEventBus
from importpipe.imports.domain.events import (
    FileImportFailed,
    FileImportFinished,
    FileImportStarted,
    ImportJobFailed,
    ImportJobFinished,
    ImportJobScheduled,
    ImportJobStarted,
)
from importpipe.metrics import FILE_IMPORTS, IMPORT_JOBS

logger = logging.getLogger(__name__)


def _handle_import_scheduled(event: ImportJobScheduled) -> None:
    try:
        IMPORT_JOBS.labels(state="scheduled").inc()
    except Exception as e:
        logger.error(f"Failed to record import scheduling metrics: {e}")


def _handle_import_started(event: ImportJobStarted) -> None:
    try:
        IMPORT_JOBS.labels(state="started").inc()
    except Exception as e:
        logger.error(f"Failed to record import start metrics: {e}")


def _handle_import_finished(event: ImportJobFinished) -> None:
    """Handle import job completion events."""
    try:
        IMPORT_JOBS.labels(state="finished").inc()
        if event.termination_reason:
            logger.info(f"Import {event.import_id} finished: {event.message}")
        logger.debug(f"Recorded metrics for import completion: {event.import_id}")
    except Exception as e:
        logger.error(f"Failed to record import completion metrics: {e}")


def _handle_import_failed(event: ImportJobFailed) -> None:
    """Handle import job failure events."""
    try:
        IMPORT_JOBS.labels(state="failed").inc()
        logger.debug(f"Recorded metrics for import failure: {event.import_id}")
    except Exception as e:
        logger.error(f"Failed to record import failure metrics: {e}")


def _handle_file_started(event: FileImportStarted) -> None:
    try:
        state = "resumed" if event.resumed_from else "started"
        FILE_IMPORTS.labels(state=state).inc()
    except Exception as e:
        logger.error(f"Failed to record file import start metrics: {e}")


def _handle_file_finished(event: FileImportFinished) -> None:
    try:
        FILE_IMPORTS.labels(state="finished").inc()
    except Exception as e:
        logger.error(f"Failed to record file import completion metrics: {e}")


def _handle_file_failed(event: FileImportFailed) -> None:
    try:
        FILE_IMPORTS.labels(state="failed").inc()
    except Exception as e:
        logger.error(f"Failed to record file import failure metrics: {e}")


def register(bus: IEventBus) -> None:
    """Register all monitoring event handlers on ``bus``."""
    bus.subscribe(ImportJobScheduled, _handle_import_scheduled)
    bus.subscribe(ImportJobStarted, _handle_import_started)
    bus.subscribe(ImportJobFinished, _handle_import_finished)
    bus.subscribe(ImportJobFailed, _handle_import_failed)
    bus.subscribe(FileImportStarted, _handle_file_started)
    bus.subscribe(FileImportFinished, _handle_file_finished)
    bus.subscribe(FileImportFailed, _handle_file_failed)

    logger.info("Monitoring event handlers registered")
