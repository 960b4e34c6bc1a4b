# SPDX-License-Identifier: Apache-2.0
"""In-process job scheduler running named jobs on a thread pool."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from ..domain.collaborators import IScheduler, JobExecution, JobHandle
from ..domain.errors import SchedulingError

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobExecution], Any]

MAX_KEPT_FAILURES = 100


class ThreadedJobExecution(JobExecution):
    """Execution context handed to a job handler."""

    def __init__(self, job_id: str, job_name: str, payload: Mapping[str, Any]):
        self._job_id = job_id
        self._job_name = job_name
        self._payload = dict(payload)
        self._lock = threading.Lock()
        self.heartbeats = 0
        self.last_heartbeat: Optional[float] = None

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def job_name(self) -> str:
        return self._job_name

    @property
    def payload(self) -> Mapping[str, Any]:
        return self._payload

    def heartbeat(self) -> None:
        with self._lock:
            self.heartbeats += 1
            self.last_heartbeat = time.monotonic()


class ThreadedScheduler(IScheduler):
    """
    Runs registered job handlers on worker threads, no earlier than their
    not-before time.

    Handler exceptions are logged and kept in :attr:`failures` (the most
    recent ``MAX_KEPT_FAILURES``); they never reach the code that scheduled
    the job.

    :attr:`executions` holds only pending and running jobs, keyed by job id.
    """

    def __init__(self, max_workers: int = 4):
        self._handlers: Dict[str, JobHandler] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="import-scheduler"
        )
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._outstanding = 0
        self._closed = False
        self.executions: Dict[str, ThreadedJobExecution] = {}
        self.failures: List[Tuple[ThreadedJobExecution, BaseException]] = []

    def register(self, job_name: str, handler: JobHandler) -> None:
        self._handlers[job_name] = handler

    def create_job(
        self, job_name: str, not_before_ms: int, payload: Mapping[str, Any]
    ) -> JobHandle:
        handler = self._handlers.get(job_name)
        if handler is None:
            raise SchedulingError(f"No handler registered for job '{job_name}'")

        handle = JobHandle(job_id=str(uuid4()), job_name=job_name, not_before_ms=not_before_ms)
        execution = ThreadedJobExecution(handle.job_id, job_name, payload)

        with self._lock:
            if self._closed:
                raise SchedulingError("Scheduler is shut down")
            self._outstanding += 1
            self.executions[execution.job_id] = execution
            try:
                self._executor.submit(self._run, handler, execution, not_before_ms)
            except RuntimeError as e:
                self.executions.pop(execution.job_id, None)
                self._outstanding -= 1
                raise SchedulingError(f"Unable to submit job '{job_name}': {e}") from e

        logger.debug(f"Scheduled {job_name} {handle.job_id} at {not_before_ms}")
        return handle

    def _run(self, handler: JobHandler, execution: ThreadedJobExecution, not_before_ms: int) -> None:
        try:
            delay = not_before_ms / 1000 - time.time()
            if delay > 0:
                time.sleep(delay)
            handler(execution)
        except Exception as e:
            logger.exception(f"Job {execution.job_name} {execution.job_id} failed: {e}")
            with self._lock:
                self.failures.append((execution, e))
                del self.failures[:-MAX_KEPT_FAILURES]
        finally:
            with self._idle:
                self.executions.pop(execution.job_id, None)
                self._outstanding -= 1
                self._idle.notify_all()

    @property
    def outstanding(self) -> int:
        with self._lock:
            return self._outstanding

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no job is pending or running. Returns ``False`` on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._outstanding == 0, timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
