# SPDX-License-Identifier: Apache-2.0
"""Unit tests for FileImportJobService and parent aggregation."""

from __future__ import annotations

import threading

import pytest

from importpipe.imports.domain.collaborators import FILE_IMPORT_JOB_NAME
from importpipe.imports.domain.entities import JobState, TerminationReason
from importpipe.imports.domain.events import (
    CheckpointRecorded,
    FileImportFinished,
    ImportJobFinished,
)
from importpipe.imports.domain.repositories import ImportJobNotFoundError
from importpipe.domain.entities import EntityId
from tests.conftest import ORG_ID
from tests.fakes import FakeJobExecution


def _records(*ids, links=None):
    links = links or {}
    return [
        {
            "uuid": uuid,
            "type": "user",
            "name": f"name-{uuid}",
            "connections": {"likes": links.get(uuid, [])},
        }
        for uuid in ids
    ]


@pytest.fixture
def fan_out(import_service, blob_store, file_job_repository, write_export):
    """Schedule and run an import over the given export files.

    Returns the import id and the file jobs in scheduling order.
    """

    def _fan_out(exports):
        for key, records in exports.items():
            path = write_export(key.replace("/", "_"), records)
            blob_store.add_file(key, path)
        import_id = import_service.schedule({"organizationId": ORG_ID})
        import_service.run(import_id)
        return import_id, file_job_repository.list_by_import(import_id)

    return _fan_out


def _run_from_payload(file_import_service, scheduler, file_job, execution=None):
    for _, payload in scheduler.jobs_named(FILE_IMPORT_JOB_NAME):
        if payload["file_import_id"] == str(file_job.id):
            execution = execution or FakeJobExecution(payload, FILE_IMPORT_JOB_NAME)
            return file_import_service.handle(execution)
    raise AssertionError(f"no payload for {file_job.file_name}")


class TestFileImport:
    def test_imports_every_record_and_finishes_parent(
        self, fan_out, file_import_service, scheduler, entity_stores, job_repository
    ):
        import_id, (file_job,) = fan_out(
            {"acme/app1.users.1.json": _records("u1", "u2", "u3", links={"u1": ["u2"]})}
        )

        result = _run_from_payload(file_import_service, scheduler, file_job)

        assert result.state is JobState.FINISHED
        assert result.completed
        assert result.last_checkpoint_id == "u3"

        store = entity_stores.stores["acme/app1"]
        assert sorted(store.entities) == ["u1", "u2", "u3"]
        assert store.entities["u1"] == ("user", {"name": "name-u1"})
        assert store.connections == [("u1", "likes", "u2")]

        parent = job_repository.get_by_id(import_id)
        assert parent.state is JobState.FINISHED
        assert parent.termination_reason is None

    def test_parent_waits_for_every_file(
        self, fan_out, file_import_service, scheduler, job_repository
    ):
        import_id, file_jobs = fan_out(
            {
                "acme/app1.users.1.json": _records("u1"),
                "acme/app1.users.2.json": _records("u2"),
            }
        )

        _run_from_payload(file_import_service, scheduler, file_jobs[0])
        assert job_repository.get_by_id(import_id).state is JobState.STARTED

        _run_from_payload(file_import_service, scheduler, file_jobs[1])
        assert job_repository.get_by_id(import_id).state is JobState.FINISHED

    def test_heartbeats_reach_the_scheduler(self, fan_out, file_import_service, scheduler):
        ids = [f"u{i}" for i in range(6)]
        _, (file_job,) = fan_out(
            {"acme/app1.users.1.json": _records(*ids, links={uuid: ["u0"] for uuid in ids})}
        )
        (_, payload), = scheduler.jobs_named(FILE_IMPORT_JOB_NAME)
        execution = FakeJobExecution(payload, FILE_IMPORT_JOB_NAME)

        file_import_service.handle(execution)

        # 6 records x 2 events each, heartbeat every 3 events
        assert execution.heartbeats == 4

    def test_checkpoints_are_published(self, fan_out, file_import_service, scheduler, event_bus):
        _, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1", "u2", "u3", "u4")})

        _run_from_payload(file_import_service, scheduler, file_job)

        checkpoints = [e.checkpoint_id for e in event_bus.get_events_of_type(CheckpointRecorded)]
        assert checkpoints == ["u2", "u4"]
        assert event_bus.has_event_of_type(FileImportFinished)


class TestWriteErrors:
    def test_write_errors_are_recorded_and_file_still_finishes(
        self, fan_out, file_import_service, scheduler, entity_stores, job_repository
    ):
        import_id, (file_job,) = fan_out(
            {"acme/app1.users.1.json": _records("u1", "u2", "u3", "u4")}
        )
        store = entity_stores("acme/app1")
        store.fail_on("u2", "first failure")
        store.fail_on("u4", "second failure")

        result = _run_from_payload(file_import_service, scheduler, file_job)

        assert result.state is JobState.FINISHED
        assert result.completed
        assert result.write_error_count == 2
        assert result.error_message == "second failure: u4"
        assert "first failure: u2" in result.error_history
        assert sorted(store.entities) == ["u1", "u3"]
        assert job_repository.get_by_id(import_id).state is JobState.FINISHED


class TestFailures:
    def test_parse_error_fails_file_and_parent(
        self, fan_out, file_import_service, scheduler, job_repository
    ):
        import_id, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1", "u2", "u3")})
        (_, payload), = scheduler.jobs_named(FILE_IMPORT_JOB_NAME)
        with open(payload["file"], "w", encoding="utf-8") as f:
            f.write(
                '[{"uuid": "u1", "type": "user"}, {"uuid": "u2", "type": "user"}, '
                '{"type": "user"}]'
            )

        result = _run_from_payload(file_import_service, scheduler, file_job)

        assert result.state is JobState.FAILED
        assert not result.completed
        assert result.error_message.startswith("Parse error:")
        assert result.last_checkpoint_id == "u2"

        parent = job_repository.get_by_id(import_id)
        assert parent.state is JobState.FAILED
        assert parent.termination_reason is TerminationReason.FILE_FAILED
        assert "1 of 1 files failed" in parent.error_message

    def test_missing_source_file_fails(self, fan_out, file_import_service, tmp_path):
        _, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1")})

        result = file_import_service.run(file_job.id, tmp_path / "gone.json")

        assert result.state is JobState.FAILED
        assert "Unable to read source file" in result.error_message

    def test_one_failed_sibling_fails_parent_after_all_settle(
        self, fan_out, file_import_service, scheduler, job_repository, tmp_path
    ):
        import_id, file_jobs = fan_out(
            {
                "acme/app1.users.1.json": _records("u1"),
                "acme/app1.users.2.json": _records("u2"),
            }
        )

        file_import_service.run(file_jobs[0].id, tmp_path / "gone.json")
        _run_from_payload(file_import_service, scheduler, file_jobs[1])

        parent = job_repository.get_by_id(import_id)
        assert parent.state is JobState.FAILED
        assert "acme/app1.users.1.json" in parent.error_message

    def test_deeply_nested_values_do_not_stop_the_file(
        self, fan_out, file_import_service, scheduler, entity_stores, job_repository
    ):
        import_id, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1", "u2")})
        (_, payload), = scheduler.jobs_named(FILE_IMPORT_JOB_NAME)
        depth = 5000
        with open(payload["file"], "w", encoding="utf-8") as f:
            f.write(
                '[{"uuid": "u1", "type": "user", "x": '
                + "[" * depth + "]" * depth
                + '}, {"uuid": "u2", "type": "user"}]'
            )

        result = _run_from_payload(file_import_service, scheduler, file_job)

        assert result.state is JobState.FINISHED
        assert sorted(entity_stores.stores["acme/app1"].entities) == ["u1", "u2"]
        assert job_repository.get_by_id(import_id).state is JobState.FINISHED

    def test_unexpected_error_fails_file_and_parent(
        self, fan_out, file_import_service, scheduler, job_repository, monkeypatch
    ):
        import_id, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1")})

        def explode(path, checkpoint_id=None):
            raise RecursionError("maximum recursion depth exceeded")
            yield

        monkeypatch.setattr("importpipe.imports.application.services.iter_file", explode)

        result = _run_from_payload(file_import_service, scheduler, file_job)

        assert result.state is JobState.FAILED
        assert not result.completed
        assert result.error_message.startswith("Unexpected error: RecursionError")
        assert job_repository.get_by_id(import_id).state is JobState.FAILED

    def test_unknown_file_job(self, file_import_service, tmp_path):
        with pytest.raises(ImportJobNotFoundError):
            file_import_service.run(EntityId.generate(), tmp_path / "x.json")


class TestResume:
    def test_resumes_after_checkpoint(
        self, fan_out, file_import_service, scheduler, entity_stores, file_job_repository
    ):
        _, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1", "u2", "u3", "u4")})
        stored = file_job_repository.get_by_id(file_job.id)
        stored.record_checkpoint("u2")
        file_job_repository.update(stored)

        result = _run_from_payload(file_import_service, scheduler, file_job)

        store = entity_stores.stores["acme/app1"]
        assert sorted(store.entities) == ["u3", "u4"]
        assert result.state is JobState.FINISHED
        assert result.last_checkpoint_id == "u4"

    def test_checkpoint_missing_from_file_fails_instead_of_finishing(
        self, fan_out, file_import_service, scheduler, entity_stores, file_job_repository,
        job_repository,
    ):
        import_id, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1", "u2", "u3")})
        stored = file_job_repository.get_by_id(file_job.id)
        stored.record_checkpoint("not-in-file")
        file_job_repository.update(stored)

        result = _run_from_payload(file_import_service, scheduler, file_job)

        assert result.state is JobState.FAILED
        assert not result.completed
        assert "checkpoint not-in-file not found" in result.error_message
        assert entity_stores("acme/app1").entities == {}
        assert job_repository.get_by_id(import_id).state is JobState.FAILED

    def test_completed_file_is_not_processed_again(
        self, fan_out, file_import_service, scheduler, entity_stores
    ):
        _, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1", "u2")})
        _run_from_payload(file_import_service, scheduler, file_job)
        store = entity_stores.stores["acme/app1"]
        calls = len(store.calls)

        result = _run_from_payload(file_import_service, scheduler, file_job)

        assert result.state is JobState.FINISHED
        assert len(store.calls) == calls


class TestConcurrentSiblings:
    def test_conflicting_record_updates_are_retried(
        self, fan_out, file_import_service, scheduler, file_job_repository, job_repository
    ):
        import_id, (file_job,) = fan_out({"acme/app1.users.1.json": _records("u1", "u2")})
        file_job_repository.force_conflicts(2)
        job_repository.force_conflicts(2)

        result = _run_from_payload(file_import_service, scheduler, file_job)

        assert result.state is JobState.FINISHED
        assert job_repository.get_by_id(import_id).state is JobState.FINISHED
        assert file_job_repository.conflicts == 2
        assert job_repository.conflicts == 2

    def test_siblings_finishing_together_finish_parent_once(
        self, fan_out, file_import_service, scheduler, job_repository, event_bus
    ):
        exports = {f"acme/app1.users.{n}.json": _records(f"u{n}a", f"u{n}b") for n in range(6)}
        import_id, file_jobs = fan_out(exports)

        errors = []

        def run(file_job):
            try:
                _run_from_payload(file_import_service, scheduler, file_job)
            except Exception as e:  # pragma: no cover - surfaced below
                errors.append(e)

        threads = [threading.Thread(target=run, args=(fj,)) for fj in file_jobs]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert job_repository.get_by_id(import_id).state is JobState.FINISHED
        assert len(event_bus.get_events_of_type(ImportJobFinished)) == 1
