# SPDX-License-Identifier: Apache-2.0
"""Unit tests for ImportJobService scheduling and fan-out."""

from __future__ import annotations

import time

import pytest

from importpipe.imports.application.services import NO_FILES_MESSAGE
from importpipe.imports.domain.collaborators import FILE_IMPORT_JOB_NAME, IMPORT_JOB_NAME
from importpipe.imports.domain.entities import JobState, TerminationReason
from importpipe.imports.domain.errors import ConfigurationError, SchedulingError
from importpipe.imports.domain.events import ImportJobFailed, ImportJobScheduled
from importpipe.imports.domain.repositories import ImportJobNotFoundError
from importpipe.imports.domain.value_objects import ScopeType
from importpipe.domain.entities import EntityId
from tests.conftest import APP_ID, ORG_ID
from tests.fakes import FakeJobExecution


def _schedule_and_run(import_service, config):
    import_id = import_service.schedule(config)
    return import_service.run(import_id)


class TestSchedule:
    def test_requires_config(self, import_service, job_repository, scheduler):
        with pytest.raises(ConfigurationError):
            import_service.schedule(None)

        assert job_repository.get_all_jobs() == []
        assert scheduler.jobs == []

    def test_creates_scheduled_job(self, import_service, job_repository, scheduler, event_bus):
        before_ms = int(time.time() * 1000)

        import_id = import_service.schedule({"organizationId": ORG_ID})

        job = job_repository.get_by_id(import_id)
        assert job.state is JobState.SCHEDULED
        assert job.import_info == {"organizationId": ORG_ID}
        assert job_repository.ensure_schema_calls == 1

        (handle,) = scheduler.jobs
        assert handle.job_name == IMPORT_JOB_NAME
        assert handle.not_before_ms >= before_ms + 250
        assert scheduler.payloads[0] == {
            "import_info": {"organizationId": ORG_ID},
            "import_id": str(import_id),
        }
        assert event_bus.has_event_of_type(ImportJobScheduled)

    def test_scheduler_failure_fails_job_and_propagates(
        self, import_service, job_repository, scheduler, event_bus
    ):
        scheduler.fail_jobs_named(IMPORT_JOB_NAME)

        with pytest.raises(SchedulingError):
            import_service.schedule({"organizationId": ORG_ID})

        (job,) = job_repository.get_all_jobs()
        assert job.state is JobState.FAILED
        assert job.termination_reason is TerminationReason.SCHEDULING
        assert "scheduler rejected" in job.error_message
        assert event_bus.has_event_of_type(ImportJobFailed)


class TestRunScopeProblems:
    @pytest.mark.parametrize(
        "config",
        [{}, {"applicationId": APP_ID}, {"organizationId": ""}],
    )
    def test_missing_organization_ends_job_without_file_jobs(
        self, import_service, file_job_repository, blob_store, config
    ):
        job = _schedule_and_run(import_service, config)

        assert job.is_terminal
        assert job.state is JobState.FAILED
        assert job.error_message
        assert job.termination_reason is TerminationReason.CONFIGURATION
        assert file_job_repository.get_all_jobs() == []
        assert blob_store.calls == []

    def test_collection_without_application(self, import_service):
        job = _schedule_and_run(
            import_service, {"organizationId": ORG_ID, "collectionName": "users"}
        )

        assert job.state is JobState.FAILED
        assert "applicationId" in job.error_message

    def test_unknown_organization_finishes_with_scope_not_found(
        self, import_service, file_job_repository
    ):
        job = _schedule_and_run(import_service, {"organizationId": "nope"})

        assert job.state is JobState.FINISHED
        assert job.termination_reason is TerminationReason.SCOPE_NOT_FOUND
        assert "nope" in job.error_message
        assert file_job_repository.get_all_jobs() == []

    def test_unknown_application_finishes_with_scope_not_found(self, import_service):
        job = _schedule_and_run(import_service, {"organizationId": ORG_ID, "applicationId": "x"})

        assert job.state is JobState.FINISHED
        assert job.termination_reason is TerminationReason.SCOPE_NOT_FOUND

    def test_no_files_is_not_a_failure(self, import_service, blob_store):
        blob_store.add_file("other/app9.users.1.json")

        job = _schedule_and_run(import_service, {"organizationId": ORG_ID})

        assert job.state is JobState.FINISHED
        assert job.error_message == NO_FILES_MESSAGE
        assert job.termination_reason is TerminationReason.NO_SOURCE_FILES

    def test_blob_failure_fails_job(self, import_service, blob_store):
        blob_store.error = RuntimeError("bucket gone")

        job = _schedule_and_run(import_service, {"organizationId": ORG_ID})

        assert job.state is JobState.FAILED
        assert job.termination_reason is TerminationReason.SOURCE_UNAVAILABLE
        assert "bucket gone" in job.error_message


class TestRunFanOut:
    def test_organization_import_creates_a_file_job_per_file(
        self, import_service, blob_store, file_job_repository, scheduler
    ):
        blob_store.add_file("acme/app1.users.1.json")
        blob_store.add_file("acme/app2.pets.1.json")
        blob_store.add_file("other/app1.users.1.json")

        job = _schedule_and_run(import_service, {"organizationId": ORG_ID})

        assert blob_store.calls[0][1:] == ("acme/", ScopeType.ORGANIZATION)
        assert job.state is JobState.STARTED

        file_jobs = file_job_repository.list_by_import(job.id)
        assert [fj.file_name for fj in file_jobs] == [
            "acme/app1.users.1.json",
            "acme/app2.pets.1.json",
        ]
        assert all(fj.state is JobState.SCHEDULED for fj in file_jobs)
        assert job.manifest == [
            {"fileName": fj.file_name, "jobId": str(fj.id)} for fj in file_jobs
        ]

        scheduled = scheduler.jobs_named(FILE_IMPORT_JOB_NAME)
        assert len(scheduled) == 2
        assert scheduled[0][1]["file_import_id"] == str(file_jobs[0].id)
        assert scheduled[0][1]["partition"] == "acme/app1"
        assert scheduled[1][1]["partition"] == "acme/app2"

    def test_application_scope_uses_application_prefix(self, import_service, blob_store):
        blob_store.add_file("acme/app1.users.1.json")
        blob_store.add_file("acme/app2.users.1.json")

        job = _schedule_and_run(import_service, {"organizationId": ORG_ID, "applicationId": APP_ID})

        assert blob_store.calls[0][1:] == ("acme/app1.", ScopeType.APPLICATION)
        assert len(job.manifest) == 1

    def test_collection_scope_narrows_application_prefix(self, import_service, blob_store):
        blob_store.add_file("acme/app1.users.1.json")
        blob_store.add_file("acme/app1.pets.1.json")

        job = _schedule_and_run(
            import_service,
            {"organizationId": ORG_ID, "applicationId": APP_ID, "collectionName": "pets"},
        )

        assert blob_store.calls[0][1:] == ("acme/app1.pets.", ScopeType.APPLICATION)
        assert [entry["fileName"] for entry in job.manifest] == ["acme/app1.pets.1.json"]

    def test_file_scheduling_failure_fails_that_file_and_the_import(
        self, import_service, blob_store, file_job_repository, scheduler
    ):
        blob_store.add_file("acme/app1.users.1.json")
        blob_store.add_file("acme/app1.users.2.json")
        import_id = import_service.schedule({"organizationId": ORG_ID})
        scheduler.fail_after(1)

        job = import_service.run(import_id)

        states = [fj.state for fj in file_job_repository.list_by_import(import_id)]
        assert states == [JobState.SCHEDULED, JobState.FAILED]
        assert job.state is JobState.FAILED
        assert job.termination_reason is TerminationReason.FILE_FAILED

    def test_rerun_does_not_duplicate_file_jobs(
        self, import_service, blob_store, file_job_repository, scheduler
    ):
        blob_store.add_file("acme/app1.users.1.json")
        import_id = import_service.schedule({"organizationId": ORG_ID})

        import_service.run(import_id)
        job = import_service.run(import_id)

        assert len(file_job_repository.list_by_import(import_id)) == 1
        assert len(job.manifest) == 1
        assert len(scheduler.jobs_named(FILE_IMPORT_JOB_NAME)) == 1

    def test_terminal_job_is_not_rerun(self, import_service, blob_store):
        import_id = import_service.schedule({"organizationId": ORG_ID})
        import_service.run(import_id)
        blob_store.add_file("acme/app1.users.1.json")

        job = import_service.run(import_id)

        assert job.state is JobState.FINISHED
        assert job.manifest == []
        assert len(blob_store.calls) == 1

    def test_survives_concurrent_record_updates(
        self, import_service, blob_store, job_repository
    ):
        blob_store.add_file("acme/app1.users.1.json")
        import_id = import_service.schedule({"organizationId": ORG_ID})
        job_repository.force_conflicts(3)

        job = import_service.run(import_id)

        assert job.state is JobState.STARTED
        assert len(job.manifest) == 1
        assert job_repository.conflicts == 3

    def test_unknown_job(self, import_service):
        with pytest.raises(ImportJobNotFoundError):
            import_service.run(EntityId.generate())


class TestSchedulerEntryPoint:
    def test_handle_runs_job_from_payload(self, import_service, scheduler, blob_store):
        blob_store.add_file("acme/app1.users.1.json")
        import_id = import_service.schedule({"organizationId": ORG_ID})
        execution = FakeJobExecution(scheduler.payloads[0], IMPORT_JOB_NAME)

        job = import_service.handle(execution)

        assert job.id == import_id
        assert len(job.manifest) == 1


class TestQueries:
    def test_status_lists_file_imports(self, import_service, blob_store):
        blob_store.add_file("acme/app1.users.1.json")
        import_id = import_service.schedule({"organizationId": ORG_ID})
        import_service.run(import_id)

        status = import_service.get_status(import_id)

        assert status["state"] == "STARTED"
        assert status["file_imports"][0]["file_name"] == "acme/app1.users.1.json"
        assert status["file_imports"][0]["state"] == "SCHEDULED"

    def test_list_jobs_by_state(self, import_service):
        first = import_service.schedule({"organizationId": ORG_ID})
        import_service.run(first)
        second = import_service.schedule({"organizationId": ORG_ID})

        scheduled = import_service.list_jobs(JobState.SCHEDULED)

        assert [job.id for job in scheduled] == [second]
        assert [job.id for job in import_service.list_jobs()] == [second, first]
