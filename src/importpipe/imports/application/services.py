# SPDX-License-Identifier: Apache-2.0
"""Import application services.

:class:`ImportJobService` drives the top-level job: it schedules it, resolves
its scope and source files, and fans out one file import per file.
:class:`FileImportJobService` drives one file through the producer and the
dispatcher. Both roll file outcomes back into the parent through
:class:`ImportAggregator`.

Job records are shared between the scheduler threads running sibling file
imports, so every change goes through :func:`update_with_retry`, which
reloads the record, applies the change and saves it with a version check.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, TypeVar

from importpipe.domain.entities import Entity, EntityId
from importpipe.domain.events import IEventBus
from importpipe.metrics import FILE_PROCESSING_TIME, REPO_CONFLICTS

from ..dispatcher import WriteDispatcher
from ..domain.collaborators import (
    FILE_IMPORT_ID_KEY,
    FILE_IMPORT_JOB_NAME,
    FILE_KEY,
    IMPORT_ID_KEY,
    IMPORT_INFO_KEY,
    IMPORT_JOB_NAME,
    SCHEDULE_GRACE_MS,
    EntityStoreFactory,
    IBlobStore,
    IDirectory,
    IScheduler,
    JobExecution,
)
from ..domain.entities import FileImportJob, ImportJob, JobState, TerminationReason
from ..domain.errors import (
    ConfigurationError,
    NotFoundError,
    ParseError,
    SchedulingError,
    SourceRetrievalError,
    WriteError,
)
from ..domain.repositories import (
    IFileImportJobRepository,
    IImportJobRepository,
    ImportConcurrencyError,
    ImportJobNotFoundError,
)
from ..domain.services import (
    aggregate_import_state,
    partition_for_file,
    prepare_path_prefix,
    resolve_scope,
)
from ..domain.value_objects import DispatchSettings, ImportScope, ScopeType, SourceFile
from ..producer import iter_file

logger = logging.getLogger(__name__)

NO_FILES_MESSAGE = "no files found in the source with the relevant context"
PARTITION_KEY = "partition"
DEFAULT_UPDATE_ATTEMPTS = 10

E = TypeVar("E", bound=Entity)


def update_with_retry(
    repository: Any,
    entity_id: EntityId,
    mutate: Callable[[E], Optional[bool]],
    event_bus: Optional[IEventBus] = None,
    attempts: int = DEFAULT_UPDATE_ATTEMPTS,
) -> E:
    """Reload, change and save a job record, retrying on version conflicts.

    ``mutate`` receives a freshly loaded entity. When it returns ``False``
    nothing changed and the entity is returned without saving. Domain events
    raised by the change are published after a successful save.

    Raises:
        ImportJobNotFoundError: If the record does not exist
        ImportConcurrencyError: If every attempt lost a race
    """
    for attempt in range(1, attempts + 1):
        entity = repository.get_by_id(entity_id)
        if entity is None:
            raise ImportJobNotFoundError(entity_id)

        if mutate(entity) is False:
            return entity

        try:
            repository.update(entity)
        except ImportConcurrencyError:
            REPO_CONFLICTS.labels(record=type(entity).__name__).inc()
            if attempt == attempts:
                raise
            logger.debug(f"Version conflict on {entity_id}, retrying ({attempt}/{attempts})")
            continue

        if event_bus is not None:
            for event in entity.domain_events:
                event_bus.publish(event)
        entity.clear_domain_events()
        return entity

    raise ImportConcurrencyError(entity_id, -1)


def _not_before_ms(grace_period_ms: int) -> int:
    return int(time.time() * 1000) + grace_period_ms


class ImportAggregator:
    """Rolls the states of an import's file jobs up into the import job."""

    def __init__(
        self,
        job_repository: IImportJobRepository,
        file_job_repository: IFileImportJobRepository,
        event_bus: Optional[IEventBus] = None,
    ):
        self._job_repository = job_repository
        self._file_job_repository = file_job_repository
        self._event_bus = event_bus

    def aggregate(self, import_id: EntityId) -> ImportJob:
        """Re-evaluate the import job from its file jobs.

        Safe to call any number of times from concurrent file completions.
        The import job is left untouched while any file is still running.
        """
        file_jobs = self._file_job_repository.list_by_import(import_id)
        target = aggregate_import_state(file_job.state for file_job in file_jobs)

        if target is JobState.FAILED:
            failed = [fj for fj in file_jobs if fj.state is JobState.FAILED]
            message = (
                f"{len(failed)} of {len(file_jobs)} files failed; "
                f"{failed[0].file_name}: {failed[0].error_message}"
            )
            return update_with_retry(
                self._job_repository,
                import_id,
                lambda job: job.fail(message, TerminationReason.FILE_FAILED),
                self._event_bus,
            )

        if target is JobState.FINISHED:
            return update_with_retry(
                self._job_repository, import_id, lambda job: job.finish(), self._event_bus
            )

        job = self._job_repository.get_by_id(import_id)
        if job is None:
            raise ImportJobNotFoundError(import_id)
        return job


class ImportJobService:
    """Application service for top-level import jobs."""

    def __init__(
        self,
        job_repository: IImportJobRepository,
        file_job_repository: IFileImportJobRepository,
        scheduler: IScheduler,
        blob_store: IBlobStore,
        directory: IDirectory,
        event_bus: Optional[IEventBus] = None,
        grace_period_ms: int = SCHEDULE_GRACE_MS,
    ):
        self._job_repository = job_repository
        self._file_job_repository = file_job_repository
        self._scheduler = scheduler
        self._blob_store = blob_store
        self._directory = directory
        self._event_bus = event_bus
        self._grace_period_ms = grace_period_ms
        self._aggregator = ImportAggregator(job_repository, file_job_repository, event_bus)
        self.log = logging.getLogger(self.__class__.__name__)

    def schedule(self, config: Optional[Mapping[str, Any]]) -> EntityId:
        """Create an import job and ask the scheduler to run it.

        Raises:
            ConfigurationError: If ``config`` is missing
            SchedulingError: If the scheduler rejects the job; the job is
                recorded as ``FAILED`` first
        """
        if config is None:
            raise ConfigurationError("import configuration is required")

        self._job_repository.ensure_schema()

        job = ImportJob.create(config)
        self._job_repository.add(job)

        payload = {IMPORT_INFO_KEY: dict(config), IMPORT_ID_KEY: str(job.id)}
        try:
            self._scheduler.create_job(
                IMPORT_JOB_NAME, _not_before_ms(self._grace_period_ms), payload
            )
        except SchedulingError as e:
            self.log.error(f"Unable to schedule import {job.id}: {e}")
            self._update(
                job.id,
                lambda j: j.fail(f"Unable to schedule import: {e}", TerminationReason.SCHEDULING),
            )
            raise

        self._update(job.id, lambda j: j.mark_scheduled())
        self.log.info(f"Scheduled import {job.id}")
        return job.id

    def run(self, import_id: EntityId, config: Optional[Mapping[str, Any]] = None) -> ImportJob:
        """Resolve the import's source files and fan out one file import each.

        Problems with the request or its sources end the job and are recorded
        on it rather than raised.
        """
        job = self._job_repository.get_by_id(import_id)
        if job is None:
            raise ImportJobNotFoundError(import_id)
        if job.is_terminal:
            self.log.info(f"Import {import_id} is already {job.state.value}, not running")
            return job

        if config is None:
            config = job.import_info

        job = self._update(import_id, lambda j: j.start())
        if job.is_terminal:
            return job
        self.log.info(f"Started import {import_id}")

        try:
            scope = resolve_scope(config)
        except ConfigurationError as e:
            self.log.error(f"Import {import_id} is misconfigured: {e}")
            return self._update(
                import_id, lambda j: j.fail(str(e), TerminationReason.CONFIGURATION)
            )

        try:
            name = self._scope_name(scope)
        except NotFoundError as e:
            self.log.warning(f"Import {import_id}: {e}")
            return self._update(
                import_id, lambda j: j.finish(str(e), TerminationReason.SCOPE_NOT_FOUND)
            )

        prefix = prepare_path_prefix(scope.locator_type, name, scope.collection_name)
        try:
            files = self._retrieve(config, prefix, scope.locator_type)
        except SourceRetrievalError as e:
            self.log.error(f"Import {import_id}: {e}")
            return self._update(
                import_id, lambda j: j.fail(str(e), TerminationReason.SOURCE_UNAVAILABLE)
            )

        if not files:
            self.log.info(f"Import {import_id}: no files under prefix '{prefix}'")
            return self._update(
                import_id,
                lambda j: j.finish(NO_FILES_MESSAGE, TerminationReason.NO_SOURCE_FILES),
            )

        pending = self._create_file_jobs(import_id, files)
        self._schedule_file_jobs(pending)
        self.log.info(
            f"Import {import_id}: {len(files)} files found, {len(pending)} scheduled"
        )

        return self._aggregator.aggregate(import_id)

    def handle(self, execution: JobExecution) -> ImportJob:
        """Scheduler entry point for ``importJob``."""
        payload = execution.payload
        import_id = EntityId.from_string(payload[IMPORT_ID_KEY])
        return self.run(import_id, payload.get(IMPORT_INFO_KEY))

    def get_status(self, import_id: EntityId) -> dict:
        job = self._job_repository.get_by_id(import_id)
        if job is None:
            raise ImportJobNotFoundError(import_id)
        status = job.get_status_summary()
        status["file_imports"] = [
            file_job.get_status_summary()
            for file_job in self._file_job_repository.list_by_import(import_id)
        ]
        return status

    def list_jobs(self, state: Optional[JobState] = None, limit: int = 50) -> List[ImportJob]:
        if state is not None:
            return self._job_repository.get_by_state(state)[:limit]
        return self._job_repository.list_recent(limit)

    def _update(self, import_id: EntityId, mutate: Callable[[ImportJob], Optional[bool]]) -> ImportJob:
        return update_with_retry(self._job_repository, import_id, mutate, self._event_bus)

    def _scope_name(self, scope: ImportScope) -> str:
        if scope.scope_type is ScopeType.ORGANIZATION:
            organization = self._directory.get_organization(scope.organization_id)
            if organization is None:
                raise NotFoundError(f"Organization {scope.organization_id} not found")
            return organization.name

        application = self._directory.get_application(scope.application_id)
        if application is None:
            raise NotFoundError(f"Application {scope.application_id} not found")
        return application.name

    def _retrieve(
        self, config: Mapping[str, Any], prefix: str, scope_type: ScopeType
    ) -> List[SourceFile]:
        try:
            return self._blob_store.retrieve(config, prefix, scope_type)
        except SourceRetrievalError:
            raise
        except Exception as e:
            raise SourceRetrievalError(f"Unable to retrieve source files: {e}") from e

    def _create_file_jobs(
        self, import_id: EntityId, files: List[SourceFile]
    ) -> List[tuple[FileImportJob, SourceFile]]:
        """Create and link a file job per source file before any is scheduled.

        Files that already have a file job, from an earlier run of the same
        import, are not created again; they are rescheduled only if they never
        left ``CREATED``.
        """
        existing = {
            file_job.file_name: file_job
            for file_job in self._file_job_repository.list_by_import(import_id)
        }

        pending = []
        for source in files:
            file_job = existing.get(source.key)
            if file_job is None:
                file_job = FileImportJob.create(import_id, source.key)
                self._file_job_repository.add(file_job)
                existing[source.key] = file_job
            if file_job.state is JobState.CREATED:
                pending.append((file_job, source))

        def link_all(job: ImportJob) -> bool:
            changed = False
            for source in files:
                changed |= job.add_manifest_entry(source.key, existing[source.key].id)
            return changed

        self._update(import_id, link_all)
        return pending

    def _schedule_file_jobs(self, pending: List[tuple[FileImportJob, SourceFile]]) -> None:
        for file_job, source in pending:
            payload = {
                FILE_KEY: str(source.path),
                FILE_IMPORT_ID_KEY: str(file_job.id),
                IMPORT_ID_KEY: str(file_job.import_id),
                PARTITION_KEY: partition_for_file(source.key),
            }
            try:
                self._scheduler.create_job(
                    FILE_IMPORT_JOB_NAME, _not_before_ms(self._grace_period_ms), payload
                )
            except SchedulingError as e:
                self.log.error(f"Unable to schedule file import {source.key}: {e}")
                update_with_retry(
                    self._file_job_repository,
                    file_job.id,
                    lambda fj: fj.fail(f"Unable to schedule file import: {e}"),
                    self._event_bus,
                )
                continue

            update_with_retry(
                self._file_job_repository,
                file_job.id,
                lambda fj: fj.mark_scheduled(),
                self._event_bus,
            )


class FileImportJobService:
    """Application service for per-file imports."""

    def __init__(
        self,
        file_job_repository: IFileImportJobRepository,
        aggregator: ImportAggregator,
        store_factory: EntityStoreFactory,
        settings: Optional[DispatchSettings] = None,
        event_bus: Optional[IEventBus] = None,
    ):
        self._file_job_repository = file_job_repository
        self._aggregator = aggregator
        self._store_factory = store_factory
        self._settings = settings or DispatchSettings()
        self._event_bus = event_bus
        self.log = logging.getLogger(self.__class__.__name__)

    def run(
        self,
        file_import_id: EntityId,
        source_path: Path,
        partition: Optional[str] = None,
        execution: Optional[JobExecution] = None,
    ) -> FileImportJob:
        """Stream one source file into the store, then re-evaluate the parent.

        A completed file is never processed again. A file with a checkpoint
        resumes after the checkpointed record.
        """
        file_job = self._file_job_repository.get_by_id(file_import_id)
        if file_job is None:
            raise ImportJobNotFoundError(file_import_id)

        if file_job.completed or file_job.is_terminal:
            self.log.info(f"File import {file_import_id} is already {file_job.state.value}")
            self._aggregator.aggregate(file_job.import_id)
            return file_job

        file_job = self._update(file_import_id, lambda fj: fj.start())
        if file_job.is_terminal:
            return file_job
        if file_job.checkpoint:
            self.log.info(f"Resuming {file_job.file_name} after {file_job.checkpoint}")
        else:
            self.log.info(f"Importing {file_job.file_name}")

        store = self._store_factory(partition or partition_for_file(file_job.file_name))
        dispatcher = WriteDispatcher(
            store,
            self._settings,
            on_checkpoint=lambda entity_id: self._update(
                file_import_id, lambda fj: fj.record_checkpoint(entity_id)
            ),
            on_error=lambda error: self._record_write_error(file_import_id, error),
            heartbeat=execution.heartbeat if execution is not None else None,
        )

        started = time.monotonic()
        try:
            result = dispatcher.dispatch(iter_file(source_path, file_job.checkpoint))
        except ParseError as e:
            self.log.error(f"Unable to parse {file_job.file_name}: {e}")
            self._update(file_import_id, lambda fj: fj.fail(f"Parse error: {e}"))
        except OSError as e:
            self.log.error(f"Unable to read {source_path}: {e}")
            self._update(file_import_id, lambda fj: fj.fail(f"Unable to read source file: {e}"))
        except Exception as e:
            self.log.exception(f"Unexpected error importing {file_job.file_name}: {e}")
            self._update(
                file_import_id,
                lambda fj: fj.fail(f"Unexpected error: {type(e).__name__}: {e}"),
            )
        else:
            self._update(file_import_id, lambda fj: fj.finish())
            self.log.info(
                f"Finished {file_job.file_name}: {result.entities_written} entities, "
                f"{result.events_processed} events, {result.write_errors} write errors"
            )
        finally:
            FILE_PROCESSING_TIME.observe(time.monotonic() - started)

        self._aggregator.aggregate(file_job.import_id)
        return self._file_job_repository.get_by_id(file_import_id)

    def handle(self, execution: JobExecution) -> FileImportJob:
        """Scheduler entry point for ``fileImportJob``."""
        payload = execution.payload
        return self.run(
            EntityId.from_string(payload[FILE_IMPORT_ID_KEY]),
            Path(payload[FILE_KEY]),
            payload.get(PARTITION_KEY),
            execution,
        )

    def _record_write_error(self, file_import_id: EntityId, error: WriteError) -> None:
        self._update(file_import_id, lambda fj: fj.record_write_error(str(error)))

    def _update(
        self, file_import_id: EntityId, mutate: Callable[[FileImportJob], Optional[bool]]
    ) -> FileImportJob:
        return update_with_retry(self._file_job_repository, file_import_id, mutate, self._event_bus)
