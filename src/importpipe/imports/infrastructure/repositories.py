# SPDX-License-Identifier: Apache-2.0
"""SQLite repositories for import job records."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from importpipe.domain.entities import EntityId
from importpipe.infrastructure.sqlite_pool import connection
from importpipe.metrics import REPO_LATENCY, REPO_QUERIES
from importpipe.migrations import apply_pending

from ..domain.entities import FileImportJob, ImportJob, JobState, TerminationReason
from ..domain.repositories import (
    IFileImportJobRepository,
    IImportJobRepository,
    ImportConcurrencyError,
    ImportJobNotFoundError,
    ImportRepositoryError,
)

DEFAULT_DB_PATH = Path("data/db/imports.db")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class _SqliteRepository:
    def __init__(self, db_path: str | Path | None = None):
        self._db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        apply_pending(self._db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def ensure_schema(self) -> None:
        apply_pending(self._db_path)

    def _check_updated(self, rowcount: int, table: str, job_id: EntityId, version: int) -> None:
        if rowcount == 1:
            return
        with connection(self._db_path) as conn:
            exists = conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (str(job_id),)).fetchone()
        if exists is None:
            raise ImportJobNotFoundError(job_id)
        raise ImportConcurrencyError(job_id, version)


class SqliteImportJobRepository(_SqliteRepository, IImportJobRepository):
    """SQLite implementation of the import job repository."""

    def add(self, job: ImportJob) -> None:
        with REPO_LATENCY.labels("add_import").time():
            REPO_QUERIES.labels("add_import").inc()
            try:
                with connection(self._db_path) as conn:
                    conn.execute(
                        """
                        INSERT INTO import_jobs
                        (id, state, error_message, termination_reason, started_at,
                         properties, created_at, updated_at, version)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            str(job.id),
                            job.state.value,
                            job.error_message,
                            job.termination_reason.value if job.termination_reason else None,
                            _format_ts(job.started_at),
                            json.dumps(job.properties),
                            _format_ts(job.created_at),
                            _format_ts(job.updated_at),
                            job.version,
                        ),
                    )
            except sqlite3.Error as e:
                raise ImportRepositoryError(f"Failed to add import job {job.id}: {e}") from e

    def update(self, job: ImportJob) -> None:
        with REPO_LATENCY.labels("update_import").time():
            REPO_QUERIES.labels("update_import").inc()
            try:
                with connection(self._db_path) as conn:
                    cursor = conn.execute(
                        """
                        UPDATE import_jobs
                        SET state = ?, error_message = ?, termination_reason = ?,
                            started_at = ?, properties = ?, updated_at = ?,
                            version = version + 1
                        WHERE id = ? AND version = ?
                        """,
                        (
                            job.state.value,
                            job.error_message,
                            job.termination_reason.value if job.termination_reason else None,
                            _format_ts(job.started_at),
                            json.dumps(job.properties),
                            _format_ts(job.updated_at),
                            str(job.id),
                            job.version,
                        ),
                    )
                    rowcount = cursor.rowcount
            except sqlite3.Error as e:
                raise ImportRepositoryError(f"Failed to update import job {job.id}: {e}") from e

            self._check_updated(rowcount, "import_jobs", job.id, job.version)
            job.increment_version()

    def get_by_id(self, job_id: EntityId) -> Optional[ImportJob]:
        REPO_QUERIES.labels("get_import").inc()
        try:
            with connection(self._db_path) as conn:
                row = conn.execute(
                    "SELECT * FROM import_jobs WHERE id = ?", (str(job_id),)
                ).fetchone()
        except sqlite3.Error as e:
            raise ImportRepositoryError(f"Failed to get import job {job_id}: {e}") from e

        return self._from_row(row) if row is not None else None

    def get_by_state(self, state: JobState) -> List[ImportJob]:
        REPO_QUERIES.labels("get_imports_by_state").inc()
        try:
            with connection(self._db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM import_jobs WHERE state = ? ORDER BY created_at DESC, rowid DESC",
                    (state.value,),
                ).fetchall()
        except sqlite3.Error as e:
            raise ImportRepositoryError(f"Failed to get import jobs by state {state}: {e}") from e

        return [self._from_row(row) for row in rows]

    def list_recent(self, limit: int = 50) -> List[ImportJob]:
        REPO_QUERIES.labels("list_imports").inc()
        try:
            with connection(self._db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM import_jobs ORDER BY created_at DESC, rowid DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        except sqlite3.Error as e:
            raise ImportRepositoryError(f"Failed to list import jobs: {e}") from e

        return [self._from_row(row) for row in rows]

    def _from_row(self, row: sqlite3.Row) -> ImportJob:
        reason = row["termination_reason"]
        return ImportJob(
            id=EntityId.from_string(row["id"]),
            state=JobState(row["state"]),
            error_message=row["error_message"],
            termination_reason=TerminationReason(reason) if reason else None,
            started_at=_parse_ts(row["started_at"]),
            properties=json.loads(row["properties"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            version=row["version"],
        )


class SqliteFileImportJobRepository(_SqliteRepository, IFileImportJobRepository):
    """SQLite implementation of the file import job repository."""

    def add(self, job: FileImportJob) -> None:
        with REPO_LATENCY.labels("add_file_import").time():
            REPO_QUERIES.labels("add_file_import").inc()
            try:
                with connection(self._db_path) as conn:
                    conn.execute(
                        """
                        INSERT INTO file_import_jobs
                        (id, import_id, file_name, completed, last_checkpoint_id,
                         error_message, error_history, write_error_count, state,
                         created_at, updated_at, version)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            str(job.id),
                            str(job.import_id),
                            job.file_name,
                            int(job.completed),
                            job.last_checkpoint_id,
                            job.error_message,
                            json.dumps(job.error_history),
                            job.write_error_count,
                            job.state.value,
                            _format_ts(job.created_at),
                            _format_ts(job.updated_at),
                            job.version,
                        ),
                    )
            except sqlite3.Error as e:
                raise ImportRepositoryError(f"Failed to add file import job {job.id}: {e}") from e

    def update(self, job: FileImportJob) -> None:
        with REPO_LATENCY.labels("update_file_import").time():
            REPO_QUERIES.labels("update_file_import").inc()
            try:
                with connection(self._db_path) as conn:
                    cursor = conn.execute(
                        """
                        UPDATE file_import_jobs
                        SET completed = ?, last_checkpoint_id = ?, error_message = ?,
                            error_history = ?, write_error_count = ?, state = ?,
                            updated_at = ?, version = version + 1
                        WHERE id = ? AND version = ?
                        """,
                        (
                            int(job.completed),
                            job.last_checkpoint_id,
                            job.error_message,
                            json.dumps(job.error_history),
                            job.write_error_count,
                            job.state.value,
                            _format_ts(job.updated_at),
                            str(job.id),
                            job.version,
                        ),
                    )
                    rowcount = cursor.rowcount
            except sqlite3.Error as e:
                raise ImportRepositoryError(
                    f"Failed to update file import job {job.id}: {e}"
                ) from e

            self._check_updated(rowcount, "file_import_jobs", job.id, job.version)
            job.increment_version()

    def get_by_id(self, job_id: EntityId) -> Optional[FileImportJob]:
        REPO_QUERIES.labels("get_file_import").inc()
        try:
            with connection(self._db_path) as conn:
                row = conn.execute(
                    "SELECT * FROM file_import_jobs WHERE id = ?", (str(job_id),)
                ).fetchone()
        except sqlite3.Error as e:
            raise ImportRepositoryError(f"Failed to get file import job {job_id}: {e}") from e

        return self._from_row(row) if row is not None else None

    def list_by_import(self, import_id: EntityId) -> List[FileImportJob]:
        REPO_QUERIES.labels("list_file_imports").inc()
        try:
            with connection(self._db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM file_import_jobs WHERE import_id = ? ORDER BY rowid",
                    (str(import_id),),
                ).fetchall()
        except sqlite3.Error as e:
            raise ImportRepositoryError(
                f"Failed to list file import jobs of {import_id}: {e}"
            ) from e

        return [self._from_row(row) for row in rows]

    def _from_row(self, row: sqlite3.Row) -> FileImportJob:
        return FileImportJob(
            id=EntityId.from_string(row["id"]),
            import_id=EntityId.from_string(row["import_id"]),
            file_name=row["file_name"],
            state=JobState(row["state"]),
            completed=bool(row["completed"]),
            last_checkpoint_id=row["last_checkpoint_id"],
            error_message=row["error_message"],
            error_history=json.loads(row["error_history"]),
            write_error_count=row["write_error_count"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            version=row["version"],
        )
