# SPDX-License-Identifier: Apache-2.0
"""Repository interfaces for import job records."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from importpipe.domain.entities import EntityId

from .entities import FileImportJob, ImportJob, JobState


class IImportJobRepository(ABC):
    """Repository interface for top-level import jobs.

    ``update`` uses optimistic concurrency: the stored version must equal the
    entity's version or :class:`ImportConcurrencyError` is raised.
    """

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create the backing tables if they do not exist. Idempotent."""
        pass

    @abstractmethod
    def add(self, job: ImportJob) -> None:
        """Persist a new import job."""
        pass

    @abstractmethod
    def update(self, job: ImportJob) -> None:
        """Persist changes to an existing import job.

        Raises:
            ImportConcurrencyError: If the job was modified since it was loaded
            ImportJobNotFoundError: If the job does not exist
        """
        pass

    @abstractmethod
    def get_by_id(self, job_id: EntityId) -> Optional[ImportJob]:
        pass

    @abstractmethod
    def get_by_state(self, state: JobState) -> List[ImportJob]:
        pass

    @abstractmethod
    def list_recent(self, limit: int = 50) -> List[ImportJob]:
        """Most recently created import jobs first."""
        pass


class IFileImportJobRepository(ABC):
    """Repository interface for per-file import jobs."""

    @abstractmethod
    def add(self, job: FileImportJob) -> None:
        pass

    @abstractmethod
    def update(self, job: FileImportJob) -> None:
        """Persist changes with the same concurrency rules as import jobs."""
        pass

    @abstractmethod
    def get_by_id(self, job_id: EntityId) -> Optional[FileImportJob]:
        pass

    @abstractmethod
    def list_by_import(self, import_id: EntityId) -> List[FileImportJob]:
        """File jobs linked to ``import_id``, in creation order."""
        pass


class ImportRepositoryError(Exception):
    """Base exception for import repository errors."""

    pass


class ImportJobNotFoundError(ImportRepositoryError):
    """Raised when a job record cannot be found."""

    def __init__(self, job_id: EntityId):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class ImportConcurrencyError(ImportRepositoryError):
    """Raised when a job record was modified by another writer."""

    def __init__(self, job_id: EntityId, expected_version: int):
        self.job_id = job_id
        self.expected_version = expected_version
        super().__init__(
            f"Job {job_id} was modified concurrently (expected version {expected_version})"
        )
