# SPDX-License-Identifier: Apache-2.0
"""Bounded-parallel application of write events to the entity store."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Set

from importpipe.metrics import CHECKPOINTS, HEARTBEATS, WRITE_ERRORS, WRITE_EVENTS

from .domain.collaborators import IEntityStore
from .domain.errors import ParseError, WriteError
from .domain.value_objects import DispatchSettings, EntityWrite, WriteEvent

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Counters for one dispatch run."""

    events_processed: int = 0
    entities_written: int = 0
    write_errors: int = 0
    last_checkpoint: Optional[str] = None
    last_error: Optional[str] = None


@dataclass(frozen=True)
class _Outcome:
    seq: int
    event: WriteEvent
    error: Optional[WriteError] = None


class WriteDispatcher:
    """
    Apply a stream of write events with a bounded pool of worker threads.

    Worker threads only call the store. Outcomes are handled on the thread
    that calls :meth:`dispatch`, which alone invokes the error, checkpoint and
    heartbeat callbacks, so those callbacks never run concurrently.

    A failed event is reported through ``on_error`` and processing continues.
    Checkpoints are taken only between records: once ``checkpoint_interval``
    entities have been submitted, the next ``EntityWrite`` waits for all
    in-flight events before the last successfully written entity is passed to
    ``on_checkpoint``.
    """

    def __init__(
        self,
        store: IEntityStore,
        settings: Optional[DispatchSettings] = None,
        on_checkpoint: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[WriteError], None]] = None,
        heartbeat: Optional[Callable[[], None]] = None,
    ):
        self.store = store
        self.settings = settings or DispatchSettings()
        self._on_checkpoint = on_checkpoint
        self._on_error = on_error
        self._heartbeat = heartbeat

        self._result = DispatchResult()
        self._last_entity_seq = -1
        self._last_entity_id: Optional[str] = None

    def dispatch(self, events: Iterable[WriteEvent]) -> DispatchResult:
        """Apply every event and return the run's counters.

        A ``ParseError`` raised by ``events`` stops submission; in-flight
        events are drained and a checkpoint is recorded before it propagates.
        """
        self._result = DispatchResult()
        self._last_entity_seq = -1
        self._last_entity_id = None

        pending: Set[Future] = set()
        seq = 0
        entities_since_checkpoint = 0

        with ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="import-writer"
        ) as pool:
            try:
                for event in events:
                    if (
                        isinstance(event, EntityWrite)
                        and entities_since_checkpoint >= self.settings.checkpoint_interval
                    ):
                        self._drain(pending)
                        self._checkpoint()
                        entities_since_checkpoint = 0

                    while len(pending) >= self.settings.max_in_flight:
                        pending = self._collect(pending, FIRST_COMPLETED)

                    pending.add(pool.submit(self._apply, seq, event))
                    seq += 1
                    if isinstance(event, EntityWrite):
                        entities_since_checkpoint += 1
            except ParseError:
                self._drain(pending)
                self._checkpoint()
                raise

            self._drain(pending)

        self._checkpoint()
        logger.debug(
            f"Dispatched {self._result.events_processed} events "
            f"({self._result.write_errors} errors)"
        )
        return self._result

    def _apply(self, seq: int, event: WriteEvent) -> _Outcome:
        try:
            event.apply(self.store)
        except WriteError as e:
            if e.event is None:
                e.event = event
            return _Outcome(seq, event, e)
        except Exception as e:
            return _Outcome(seq, event, WriteError(f"{event} failed: {e}", event))
        return _Outcome(seq, event)

    def _drain(self, pending: Set[Future]) -> None:
        while pending:
            pending = self._collect(pending, FIRST_COMPLETED)

    def _collect(self, pending: Set[Future], return_when: str) -> Set[Future]:
        done, not_done = wait(pending, return_when=return_when)
        for outcome in sorted((future.result() for future in done), key=lambda o: o.seq):
            self._handle(outcome)
        pending.clear()
        pending.update(not_done)
        return pending

    def _handle(self, outcome: _Outcome) -> None:
        result = self._result
        event = outcome.event
        result.events_processed += 1
        WRITE_EVENTS.labels(kind=event.kind).inc()

        if outcome.error is not None:
            result.write_errors += 1
            result.last_error = str(outcome.error)
            WRITE_ERRORS.labels(kind=event.kind).inc()
            logger.warning(f"Write failed, continuing: {outcome.error}")
            if self._on_error is not None:
                self._on_error(outcome.error)
        elif isinstance(event, EntityWrite):
            result.entities_written += 1
            if outcome.seq > self._last_entity_seq:
                self._last_entity_seq = outcome.seq
                self._last_entity_id = event.entity_id

        if result.events_processed % self.settings.heartbeat_interval == 0:
            HEARTBEATS.inc()
            if self._heartbeat is not None:
                self._heartbeat()

    def _checkpoint(self) -> None:
        entity_id = self._last_entity_id
        if entity_id is None or entity_id == self._result.last_checkpoint:
            return
        self._result.last_checkpoint = entity_id
        CHECKPOINTS.inc()
        logger.debug(f"Checkpoint at entity {entity_id}")
        if self._on_checkpoint is not None:
            self._on_checkpoint(entity_id)
