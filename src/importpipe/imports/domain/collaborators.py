# SPDX-License-Identifier: Apache-2.0
"""Interfaces of the systems the import engine talks to.

The engine depends only on these shapes: a scheduler that runs named jobs
later, blob storage holding the exported files, a directory of
organizations and applications, and the entity store the records are
written into.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from .value_objects import EntityRef, ScopeType, SourceFile

IMPORT_JOB_NAME = "importJob"
FILE_IMPORT_JOB_NAME = "fileImportJob"

# Payload keys
IMPORT_INFO_KEY = "import_info"
IMPORT_ID_KEY = "import_id"
FILE_KEY = "file"
FILE_IMPORT_ID_KEY = "file_import_id"

SCHEDULE_GRACE_MS = 250


@dataclass(frozen=True)
class JobHandle:
    """Receipt for a job accepted by the scheduler."""

    job_id: str
    job_name: str
    not_before_ms: int


class JobExecution(ABC):
    """A running scheduled job as seen by its handler."""

    @property
    @abstractmethod
    def job_id(self) -> str:
        pass

    @property
    @abstractmethod
    def job_name(self) -> str:
        pass

    @property
    @abstractmethod
    def payload(self) -> Mapping[str, Any]:
        pass

    @abstractmethod
    def heartbeat(self) -> None:
        """Signal liveness. Safe to call from any thread."""
        pass


class IScheduler(ABC):
    @abstractmethod
    def create_job(
        self, job_name: str, not_before_ms: int, payload: Mapping[str, Any]
    ) -> JobHandle:
        """Accept a job to run no earlier than ``not_before_ms`` (epoch millis).

        Raises:
            SchedulingError: If the job could not be accepted
        """
        pass


class IEntityStore(ABC):
    """Write side of one partition of the target entity store."""

    @abstractmethod
    def create(self, entity_id: str, entity_type: str, properties: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def create_connection(self, owner: EntityRef, relation_type: str, target: EntityRef) -> None:
        pass

    @abstractmethod
    def add_to_dictionary(
        self, owner: EntityRef, dictionary_name: str, entries: Dict[str, Any]
    ) -> None:
        pass


EntityStoreFactory = Callable[[str], IEntityStore]


class IBlobStore(ABC):
    @abstractmethod
    def retrieve(
        self, config: Mapping[str, Any], prefix: str, scope_type: ScopeType
    ) -> List[SourceFile]:
        """Fetch every file whose key starts with ``prefix``.

        Raises:
            SourceRetrievalError: If the storage could not be read
        """
        pass


@dataclass(frozen=True)
class ApplicationInfo:
    application_id: str
    name: str
    organization_id: str


@dataclass(frozen=True)
class OrganizationInfo:
    organization_id: str
    name: str
    applications: List[str] = field(default_factory=list)


class IDirectory(ABC):
    """Lookup of organizations and applications by id."""

    @abstractmethod
    def get_organization(self, organization_id: str) -> Optional[OrganizationInfo]:
        pass

    @abstractmethod
    def get_application(self, application_id: str) -> Optional[ApplicationInfo]:
        pass
