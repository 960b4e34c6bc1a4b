# SPDX-License-Identifier: Apache-2.0
"""Import domain events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from importpipe.domain.events import DomainEvent


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ImportJobScheduled(DomainEvent):
    """Event raised when an import job has been handed to the scheduler."""

    import_id: str
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return "import_job_scheduled"

    @property
    def aggregate_id(self) -> str:
        return self.import_id

    def _get_event_data(self) -> dict[str, Any]:
        return {"import_id": self.import_id}


@dataclass(frozen=True)
class ImportJobStarted(DomainEvent):
    """Event raised when an import job starts resolving its sources."""

    import_id: str
    started_at: datetime
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return "import_job_started"

    @property
    def aggregate_id(self) -> str:
        return self.import_id

    def _get_event_data(self) -> dict[str, Any]:
        return {"import_id": self.import_id, "started_at": self.started_at.isoformat()}


@dataclass(frozen=True)
class ImportJobFinished(DomainEvent):
    """Event raised when an import job reaches ``FINISHED``."""

    import_id: str
    files: int
    message: str = ""
    termination_reason: Optional[str] = None
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return "import_job_finished"

    @property
    def aggregate_id(self) -> str:
        return self.import_id

    def _get_event_data(self) -> dict[str, Any]:
        return {
            "import_id": self.import_id,
            "files": self.files,
            "message": self.message,
            "termination_reason": self.termination_reason,
        }


@dataclass(frozen=True)
class ImportJobFailed(DomainEvent):
    """Event raised when an import job reaches ``FAILED``."""

    import_id: str
    error_message: str
    termination_reason: Optional[str] = None
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return "import_job_failed"

    @property
    def aggregate_id(self) -> str:
        return self.import_id

    def _get_event_data(self) -> dict[str, Any]:
        return {
            "import_id": self.import_id,
            "error_message": self.error_message,
            "termination_reason": self.termination_reason,
        }


@dataclass(frozen=True)
class FileImportStarted(DomainEvent):
    """Event raised when a file import starts or resumes."""

    file_import_id: str
    import_id: str
    file_name: str
    resumed_from: Optional[str] = None
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return "file_import_started"

    @property
    def aggregate_id(self) -> str:
        return self.file_import_id

    def _get_event_data(self) -> dict[str, Any]:
        return {
            "file_import_id": self.file_import_id,
            "import_id": self.import_id,
            "file_name": self.file_name,
            "resumed_from": self.resumed_from,
        }


@dataclass(frozen=True)
class FileImportFinished(DomainEvent):
    """Event raised when every record of a file has been dispatched."""

    file_import_id: str
    import_id: str
    write_errors: int = 0
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return "file_import_finished"

    @property
    def aggregate_id(self) -> str:
        return self.file_import_id

    def _get_event_data(self) -> dict[str, Any]:
        return {
            "file_import_id": self.file_import_id,
            "import_id": self.import_id,
            "write_errors": self.write_errors,
        }


@dataclass(frozen=True)
class FileImportFailed(DomainEvent):
    """Event raised when a file import hits a fatal error."""

    file_import_id: str
    import_id: str
    error_message: str
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return "file_import_failed"

    @property
    def aggregate_id(self) -> str:
        return self.file_import_id

    def _get_event_data(self) -> dict[str, Any]:
        return {
            "file_import_id": self.file_import_id,
            "import_id": self.import_id,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class CheckpointRecorded(DomainEvent):
    """Event raised when a file import records a new resume point."""

    file_import_id: str
    checkpoint_id: str
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return "checkpoint_recorded"

    @property
    def aggregate_id(self) -> str:
        return self.file_import_id

    def _get_event_data(self) -> dict[str, Any]:
        return {"file_import_id": self.file_import_id, "checkpoint_id": self.checkpoint_id}
