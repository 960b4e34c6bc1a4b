# SPDX-License-Identifier: Apache-2.0
"""Shared test fixtures for the importpipe test suite.

FIXTURES PROVIDED:
- job_repository / file_job_repository: in-memory versioned repositories
- scheduler, blob_store, entity_stores, event_bus: collaborator fakes
- directory: static directory with one organization and two applications
- import_service / file_import_service: application services wired to the fakes
- write_export: writes a list of records as a JSON export file
- settings_file: writes a settings YAML over a local exports directory
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, List

import pytest
import yaml

from importpipe.imports.application import FileImportJobService, ImportAggregator, ImportJobService
from importpipe.imports.domain.value_objects import DispatchSettings
from importpipe.imports.infrastructure.directory import StaticDirectory
from importpipe.infrastructure.sqlite_pool import close_all_pools
from tests.fakes import (
    FakeBlobStore,
    FakeEntityStoreFactory,
    FakeEventBus,
    FakeFileImportJobRepository,
    FakeImportJobRepository,
    FakeScheduler,
)

ORG_ID = "org-1"
APP_ID = "app-1"
OTHER_APP_ID = "app-2"


@pytest.fixture
def job_repository() -> FakeImportJobRepository:
    return FakeImportJobRepository()


@pytest.fixture
def file_job_repository() -> FakeFileImportJobRepository:
    return FakeFileImportJobRepository()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def entity_stores() -> FakeEntityStoreFactory:
    return FakeEntityStoreFactory()


@pytest.fixture
def event_bus() -> FakeEventBus:
    return FakeEventBus()


@pytest.fixture
def directory() -> StaticDirectory:
    return StaticDirectory(
        organizations={ORG_ID: "acme"},
        applications={
            APP_ID: {"organization": ORG_ID, "name": "app1"},
            OTHER_APP_ID: {"organization": ORG_ID, "name": "app2"},
        },
    )


@pytest.fixture
def dispatch_settings() -> DispatchSettings:
    return DispatchSettings(max_workers=2, checkpoint_interval=2, heartbeat_interval=3)


@pytest.fixture
def import_service(
    job_repository, file_job_repository, scheduler, blob_store, directory, event_bus
) -> ImportJobService:
    return ImportJobService(
        job_repository,
        file_job_repository,
        scheduler,
        blob_store,
        directory,
        event_bus,
        grace_period_ms=250,
    )


@pytest.fixture
def file_import_service(
    job_repository, file_job_repository, entity_stores, dispatch_settings, event_bus
) -> FileImportJobService:
    return FileImportJobService(
        file_job_repository,
        ImportAggregator(job_repository, file_job_repository, event_bus),
        entity_stores,
        dispatch_settings,
        event_bus,
    )


@pytest.fixture
def write_export(tmp_path) -> Callable[..., Path]:
    """Write ``records`` as a JSON export file and return its path."""

    def _write(name: str, records: List[Any]) -> Path:
        path = tmp_path / "exports" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(records), encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def _close_sqlite_pools():
    yield
    close_all_pools()


@pytest.fixture
def settings_file(tmp_path) -> Callable[..., Path]:
    """Write a settings YAML reading exports from ``tmp_path/exports``."""

    def _write(**overrides: Any) -> Path:
        data = {
            "config_version": "1",
            "database": "db/imports.db",
            "grace_period_ms": 0,
            "scheduler_workers": 2,
            "dispatch": {"workers": 2, "checkpoint-interval": 2, "heartbeat-interval": 5},
            "source": {"kind": "local", "root": "exports"},
            "directory": {
                "organizations": {ORG_ID: "acme"},
                "applications": {
                    APP_ID: {"organization": ORG_ID, "name": "app1"},
                    OTHER_APP_ID: {"organization": ORG_ID, "name": "app2"},
                },
            },
        }
        data.update(overrides)
        (tmp_path / "exports").mkdir(exist_ok=True)
        path = tmp_path / "imports.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write
