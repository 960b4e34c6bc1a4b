# SPDX-License-Identifier: Apache-2.0
"""Import domain entities."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from importpipe.domain.entities import Entity, EntityId

from .events import (
    CheckpointRecorded,
    FileImportFailed,
    FileImportFinished,
    FileImportStarted,
    ImportJobFailed,
    ImportJobFinished,
    ImportJobScheduled,
    ImportJobStarted,
)

MANIFEST_KEY = "files"
IMPORT_INFO_KEY = "importInfo"
MAX_ERROR_HISTORY = 20


class JobState(Enum):
    """Lifecycle state shared by import jobs and file import jobs."""

    CREATED = "CREATED"
    SCHEDULED = "SCHEDULED"
    STARTED = "STARTED"
    FINISHED = "FINISHED"
    FAILED = "FAILED"

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.FINISHED, JobState.FAILED)


_STATE_RANK = {
    JobState.CREATED: 0,
    JobState.SCHEDULED: 1,
    JobState.STARTED: 2,
    JobState.FINISHED: 3,
    JobState.FAILED: 3,
}


class TerminationReason(Enum):
    """Why an import job ended other than by all of its files finishing."""

    CONFIGURATION = "configuration"
    SCOPE_NOT_FOUND = "scope_not_found"
    SOURCE_UNAVAILABLE = "source_unavailable"
    NO_SOURCE_FILES = "no_source_files"
    SCHEDULING = "scheduling"
    FILE_FAILED = "file_failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _JobRecord(Entity):
    """State machine shared by both job levels.

    Transitions only move forward. Requests to move to a state the record
    has already reached or passed are ignored and reported by returning
    ``False``; terminal records never change state again.
    """

    def __init__(
        self,
        id: EntityId,
        state: JobState,
        error_message: str,
        created_at: Optional[datetime],
        updated_at: Optional[datetime],
        version: int,
    ):
        super().__init__(id, version)
        self._state = state
        self._error_message = error_message or ""
        self._created_at = created_at or _utcnow()
        self._updated_at = updated_at or self._created_at

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def error_message(self) -> str:
        return self._error_message

    @property
    def has_error(self) -> bool:
        return bool(self._error_message.strip())

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    def _can_move_to(self, target: JobState) -> bool:
        if self._state.is_terminal:
            return False
        return target.rank > self._state.rank

    def _move_to(self, target: JobState) -> None:
        self._state = target
        self._touch()

    def _touch(self) -> None:
        self._updated_at = _utcnow()


class ImportJob(_JobRecord):
    """
    Top-level record of one bulk-import request and its aggregate outcome.

    The ``properties`` mapping is free-form; the manifest of scheduled files
    is kept under ``properties["files"]`` as ``{"fileName", "jobId"}`` pairs.
    """

    def __init__(
        self,
        id: EntityId,
        state: JobState = JobState.CREATED,
        error_message: str = "",
        termination_reason: Optional[TerminationReason] = None,
        started_at: Optional[datetime] = None,
        properties: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        version: int = 1,
    ):
        super().__init__(id, state, error_message, created_at, updated_at, version)
        self._termination_reason = termination_reason
        self._started_at = started_at
        self._properties: Dict[str, Any] = copy.deepcopy(properties) if properties else {}

    @classmethod
    def create(cls, import_info: Optional[Mapping[str, Any]] = None) -> ImportJob:
        """Create a new import job in ``CREATED`` holding its request config."""
        properties = {IMPORT_INFO_KEY: dict(import_info)} if import_info is not None else None
        return cls(EntityId.generate(), properties=properties)

    @property
    def termination_reason(self) -> Optional[TerminationReason]:
        return self._termination_reason

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    @property
    def properties(self) -> Dict[str, Any]:
        return copy.deepcopy(self._properties)

    @property
    def import_info(self) -> Optional[Dict[str, Any]]:
        """The configuration the import was scheduled with, if recorded."""
        info = self._properties.get(IMPORT_INFO_KEY)
        return dict(info) if info is not None else None

    @property
    def manifest(self) -> List[Dict[str, str]]:
        """Files scheduled by this job, in scheduling order."""
        return [dict(entry) for entry in self._properties.get(MANIFEST_KEY, [])]

    def has_manifest_entry(self, file_name: str) -> bool:
        return any(entry["fileName"] == file_name for entry in self._properties.get(MANIFEST_KEY, []))

    def add_manifest_entry(self, file_name: str, file_job_id: EntityId) -> bool:
        """Record that ``file_name`` is handled by sub-job ``file_job_id``."""
        if self.has_manifest_entry(file_name):
            return False
        self._properties.setdefault(MANIFEST_KEY, []).append(
            {"fileName": file_name, "jobId": str(file_job_id)}
        )
        self._touch()
        return True

    def mark_scheduled(self) -> bool:
        if not self._can_move_to(JobState.SCHEDULED):
            return False
        self._move_to(JobState.SCHEDULED)

        self._add_domain_event(ImportJobScheduled(import_id=str(self.id)))
        return True

    def start(self) -> bool:
        """Move to ``STARTED``, clearing any previous error.

        A job that is already ``STARTED`` may be started again when the
        scheduler re-invokes it; only the start time is refreshed.
        """
        if self.is_terminal:
            return False
        self._state = JobState.STARTED
        self._started_at = _utcnow()
        self._error_message = ""
        self._termination_reason = None
        self._touch()

        self._add_domain_event(
            ImportJobStarted(import_id=str(self.id), started_at=self._started_at)
        )
        return True

    def finish(
        self, message: str = "", reason: Optional[TerminationReason] = None
    ) -> bool:
        """Mark the job ``FINISHED``, optionally recording an explanatory message."""
        if not self._can_move_to(JobState.FINISHED):
            return False
        if message:
            self._error_message = message
        self._termination_reason = reason
        self._move_to(JobState.FINISHED)

        self._add_domain_event(
            ImportJobFinished(
                import_id=str(self.id),
                files=len(self._properties.get(MANIFEST_KEY, [])),
                message=self._error_message,
                termination_reason=reason.value if reason else None,
            )
        )
        return True

    def fail(self, message: str, reason: Optional[TerminationReason] = None) -> bool:
        """Mark the job ``FAILED`` with an error message."""
        if not self._can_move_to(JobState.FAILED):
            return False
        self._error_message = message
        self._termination_reason = reason
        self._move_to(JobState.FAILED)

        self._add_domain_event(
            ImportJobFailed(
                import_id=str(self.id),
                error_message=message,
                termination_reason=reason.value if reason else None,
            )
        )
        return True

    def get_status_summary(self) -> dict:
        return {
            "import_id": str(self.id),
            "state": self._state.value,
            "error_message": self._error_message,
            "termination_reason": (
                self._termination_reason.value if self._termination_reason else None
            ),
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "created_at": self._created_at.isoformat(),
            "updated_at": self._updated_at.isoformat(),
            "files": self.manifest,
        }

    def __repr__(self) -> str:
        return f"ImportJob(id={self.id}, state={self._state.value}, version={self.version})"


class FileImportJob(_JobRecord):
    """
    Record of the import of one source file, linked to its parent import job.

    ``last_checkpoint_id`` is the identifier of the last entity known to be
    applied; blank means the file has no checkpoint. ``error_message`` holds
    the most recent error while ``error_history`` keeps the last distinct ones.
    """

    def __init__(
        self,
        id: EntityId,
        import_id: EntityId,
        file_name: str,
        state: JobState = JobState.CREATED,
        completed: bool = False,
        last_checkpoint_id: str = "",
        error_message: str = "",
        error_history: Optional[List[str]] = None,
        write_error_count: int = 0,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        version: int = 1,
    ):
        super().__init__(id, state, error_message, created_at, updated_at, version)
        self._import_id = import_id
        self._file_name = file_name
        self._completed = completed
        self._last_checkpoint_id = last_checkpoint_id or ""
        self._error_history: List[str] = list(error_history or [])
        self._write_error_count = write_error_count

    @classmethod
    def create(cls, import_id: EntityId, file_name: str) -> FileImportJob:
        if not file_name:
            raise ValueError("file_name must not be empty")
        return cls(EntityId.generate(), import_id, file_name)

    @property
    def import_id(self) -> EntityId:
        return self._import_id

    @property
    def file_name(self) -> str:
        return self._file_name

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def last_checkpoint_id(self) -> str:
        return self._last_checkpoint_id

    @property
    def checkpoint(self) -> Optional[str]:
        """The checkpoint id, or ``None`` when blank."""
        value = self._last_checkpoint_id.strip()
        return value or None

    @property
    def error_history(self) -> List[str]:
        return self._error_history.copy()

    @property
    def write_error_count(self) -> int:
        return self._write_error_count

    def mark_scheduled(self) -> bool:
        if not self._can_move_to(JobState.SCHEDULED):
            return False
        self._move_to(JobState.SCHEDULED)
        return True

    def start(self) -> bool:
        if self.is_terminal or self._completed:
            return False
        self._state = JobState.STARTED
        self._touch()

        self._add_domain_event(
            FileImportStarted(
                file_import_id=str(self.id),
                import_id=str(self._import_id),
                file_name=self._file_name,
                resumed_from=self.checkpoint,
            )
        )
        return True

    def record_checkpoint(self, entity_id: str) -> bool:
        if self.is_terminal or entity_id == self._last_checkpoint_id:
            return False
        self._last_checkpoint_id = entity_id
        self._touch()

        self._add_domain_event(
            CheckpointRecorded(file_import_id=str(self.id), checkpoint_id=entity_id)
        )
        return True

    def record_error(self, message: str) -> None:
        """Record ``message`` as the current error without changing state."""
        self._error_message = message
        if message in self._error_history:
            self._error_history.remove(message)
        self._error_history.append(message)
        del self._error_history[:-MAX_ERROR_HISTORY]
        self._touch()

    def record_write_error(self, message: str) -> None:
        self._write_error_count += 1
        self.record_error(message)

    def finish(self) -> bool:
        """Mark the file fully processed.

        A file that already failed keeps its ``FAILED`` state.
        """
        if not self._can_move_to(JobState.FINISHED):
            return False
        self._completed = True
        self._move_to(JobState.FINISHED)

        self._add_domain_event(
            FileImportFinished(
                file_import_id=str(self.id),
                import_id=str(self._import_id),
                write_errors=self._write_error_count,
            )
        )
        return True

    def fail(self, message: str) -> bool:
        if not self._can_move_to(JobState.FAILED):
            return False
        self.record_error(message)
        self._move_to(JobState.FAILED)

        self._add_domain_event(
            FileImportFailed(
                file_import_id=str(self.id),
                import_id=str(self._import_id),
                error_message=message,
            )
        )
        return True

    def get_status_summary(self) -> dict:
        return {
            "file_import_id": str(self.id),
            "import_id": str(self._import_id),
            "file_name": self._file_name,
            "state": self._state.value,
            "completed": self._completed,
            "last_checkpoint_id": self._last_checkpoint_id,
            "error_message": self._error_message,
            "write_error_count": self._write_error_count,
        }

    def __repr__(self) -> str:
        return (
            f"FileImportJob(id={self.id}, file={self._file_name}, "
            f"state={self._state.value}, completed={self._completed})"
        )
