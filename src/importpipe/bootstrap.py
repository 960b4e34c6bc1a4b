# SPDX-License-Identifier: Apache-2.0
"""Wiring of the import engine from settings.

Builds repositories, collaborators and services, and registers the job
handlers on the scheduler. Invoked lazily by CLI commands so that importing
the CLI has no side effects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from importpipe.config import ImportSettings
from importpipe.domain.events import IEventBus
from importpipe.imports.application import FileImportJobService, ImportAggregator, ImportJobService
from importpipe.imports.domain.collaborators import (
    FILE_IMPORT_JOB_NAME,
    IMPORT_JOB_NAME,
    IBlobStore,
)
from importpipe.imports.infrastructure import (
    LocalBlobStore,
    S3BlobStore,
    SqliteEntityStoreFactory,
    SqliteFileImportJobRepository,
    SqliteImportJobRepository,
    StaticDirectory,
    ThreadedScheduler,
)
from importpipe.infrastructure.messaging import InMemoryEventBus
from importpipe.infrastructure.monitoring import register as register_monitoring

__all__ = ["ImportServices", "build_blob_store", "bootstrap"]

logger = logging.getLogger(__name__)


@dataclass
class ImportServices:
    """Everything needed to run imports locally."""

    settings: ImportSettings
    event_bus: IEventBus
    scheduler: ThreadedScheduler
    job_repository: SqliteImportJobRepository
    file_job_repository: SqliteFileImportJobRepository
    entity_stores: SqliteEntityStoreFactory
    imports: ImportJobService
    file_imports: FileImportJobService

    def close(self, wait: bool = True) -> None:
        self.scheduler.shutdown(wait=wait)


def build_blob_store(settings: ImportSettings) -> IBlobStore:
    source = settings.source
    if source.kind == "s3":
        return S3BlobStore(bucket=source.bucket, download_dir=source.download_dir)
    return LocalBlobStore(source.root)


def bootstrap(
    settings: ImportSettings,
    blob_store: Optional[IBlobStore] = None,
    event_bus: Optional[IEventBus] = None,
) -> ImportServices:
    """Build the import engine described by ``settings``."""
    if event_bus is None:
        event_bus = InMemoryEventBus()
        register_monitoring(event_bus)

    job_repository = SqliteImportJobRepository(settings.database)
    file_job_repository = SqliteFileImportJobRepository(settings.database)
    entity_stores = SqliteEntityStoreFactory(settings.database)
    scheduler = ThreadedScheduler(max_workers=settings.scheduler_workers)

    directory = StaticDirectory(
        organizations=settings.directory.organizations,
        applications={
            application_id: entry.model_dump()
            for application_id, entry in settings.directory.applications.items()
        },
    )

    imports = ImportJobService(
        job_repository,
        file_job_repository,
        scheduler,
        blob_store or build_blob_store(settings),
        directory,
        event_bus,
        grace_period_ms=settings.grace_period_ms,
    )
    file_imports = FileImportJobService(
        file_job_repository,
        ImportAggregator(job_repository, file_job_repository, event_bus),
        entity_stores,
        settings.to_dispatch_settings(),
        event_bus,
    )

    scheduler.register(IMPORT_JOB_NAME, imports.handle)
    scheduler.register(FILE_IMPORT_JOB_NAME, file_imports.handle)

    logger.info(f"Import engine ready (database {settings.database})")
    return ImportServices(
        settings=settings,
        event_bus=event_bus,
        scheduler=scheduler,
        job_repository=job_repository,
        file_job_repository=file_job_repository,
        entity_stores=entity_stores,
        imports=imports,
        file_imports=file_imports,
    )
