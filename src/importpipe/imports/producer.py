# SPDX-License-Identifier: Apache-2.0
"""Streaming producer of write events from exported JSON files.

A source file is a JSON array of record objects. Each record carries its
identity in ``uuid`` and ``type``, scalar properties, and optionally a
``connections`` block (relation type to a list of target ids) and a
``dictionaries`` block (dictionary name to key/value entries)::

    [
      {"uuid": "u1", "type": "user", "name": "ann",
       "connections": {"likes": ["u2", "u3"]},
       "dictionaries": {"meta": {"k": "v"}}}
    ]

The file is read token by token with ijson, so memory use is bounded by the
size of a single record rather than the whole file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Tuple

import ijson

from .domain.errors import ParseError
from .domain.value_objects import (
    ConnectionWrite,
    DictionaryWrite,
    EntityRef,
    EntityWrite,
    WriteEvent,
)

logger = logging.getLogger(__name__)

UUID_KEY = "uuid"
TYPE_KEY = "type"
CONNECTIONS_KEY = "connections"
DICTIONARIES_KEY = "dictionaries"

_SCALAR_EVENTS = frozenset({"null", "boolean", "integer", "double", "number", "string"})
_START_EVENTS = frozenset({"start_map", "start_array"})
_END_EVENTS = frozenset({"end_map", "end_array"})

Token = Tuple[str, Any]


@dataclass
class _Record:
    """One record read from the stream, before it is turned into events."""

    index: int
    entity_id: Optional[str] = None
    entity_type: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    blocks: List[Tuple[str, Any]] = field(default_factory=list)


class WriteEventProducer:
    """Lazy, ordered, single-pass iterator of write events over one file.

    When ``checkpoint_id`` is given, records are read without emitting
    anything until the record whose ``uuid`` equals the checkpoint has been
    passed; emission resumes with the record after it.

    Raises:
        ParseError: From iteration, when the stream is malformed or truncated,
            a record lacks its identity, or the checkpoint record never appears
    """

    def __init__(
        self,
        stream: BinaryIO,
        checkpoint_id: Optional[str] = None,
        source_name: str = "<stream>",
    ):
        self._stream = stream
        self._checkpoint_id = (checkpoint_id or "").strip() or None
        self._source_name = source_name
        self.records_read = 0
        self.records_skipped = 0
        self._events = self._produce()

    @property
    def checkpoint_id(self) -> Optional[str]:
        return self._checkpoint_id

    def __iter__(self) -> Iterator[WriteEvent]:
        return self

    def __next__(self) -> WriteEvent:
        return next(self._events)

    def _produce(self) -> Iterator[WriteEvent]:
        tokens = ((event, value) for _, event, value in ijson.parse(self._stream, use_float=True))
        skipping = self._checkpoint_id is not None

        try:
            event, _ = self._next(tokens, "the top-level array")
            if event != "start_array":
                raise ParseError(
                    f"{self._source_name}: expected a JSON array of records, found {event}"
                )

            index = 0
            while True:
                event, _ = self._next(tokens, "the next record")
                if event == "end_array":
                    break
                if event != "start_map":
                    raise ParseError(
                        f"{self._source_name}: record {index} is not an object ({event})",
                        record_index=index,
                    )

                record = self._read_record(tokens, index)
                self.records_read += 1
                index += 1

                if skipping:
                    self.records_skipped += 1
                    if record.entity_id == self._checkpoint_id:
                        logger.info(
                            f"{self._source_name}: resuming after checkpoint "
                            f"{self._checkpoint_id} ({self.records_skipped} records skipped)"
                        )
                        skipping = False
                    continue

                yield from self._to_events(record)
        except ijson.JSONError as e:
            raise ParseError(
                f"{self._source_name}: malformed JSON after {self.records_read} records: {e}",
                record_index=self.records_read,
            ) from e

        if skipping:
            raise ParseError(
                f"{self._source_name}: checkpoint {self._checkpoint_id} not found in "
                f"{self.records_read} records",
                record_index=self.records_read,
            )

    def _next(self, tokens: Iterator[Token], expected: str) -> Token:
        try:
            return next(tokens)
        except StopIteration:
            raise ParseError(
                f"{self._source_name}: unexpected end of stream while reading {expected}",
                record_index=self.records_read,
            ) from None

    def _read_record(self, tokens: Iterator[Token], index: int) -> _Record:
        record = _Record(index=index)

        while True:
            event, key = self._next(tokens, f"record {index}")
            if event == "end_map":
                break

            event, value = self._next(tokens, f"record {index} key {key!r}")

            if key in (CONNECTIONS_KEY, DICTIONARIES_KEY):
                record.blocks.append((key, self._read_value(tokens, event, value, index)))
            elif key == UUID_KEY:
                record.entity_id = self._read_identity(tokens, event, value, key, index)
            elif key == TYPE_KEY:
                record.entity_type = self._read_identity(tokens, event, value, key, index)
            elif event in _SCALAR_EVENTS:
                if value is not None and value != "":
                    record.properties[key] = value
            else:
                # nested values are not entity properties
                self._skip_value(tokens, event, index)

        if record.entity_id is None or record.entity_type is None:
            raise ParseError(
                f"{self._source_name}: record {index} is missing '{UUID_KEY}' or '{TYPE_KEY}'",
                record_index=index,
            )
        return record

    def _read_identity(
        self, tokens: Iterator[Token], event: str, value: Any, key: str, index: int
    ) -> str:
        if event not in _SCALAR_EVENTS or value is None or value == "":
            self._skip_value(tokens, event, index)
            raise ParseError(
                f"{self._source_name}: record {index} has an invalid '{key}'",
                record_index=index,
            )
        return str(value)

    def _read_value(self, tokens: Iterator[Token], event: str, value: Any, index: int) -> Any:
        """Materialize the value starting at ``event`` without recursing per level."""
        if event in _SCALAR_EVENTS:
            return value
        if event not in _START_EVENTS:
            raise ParseError(
                f"{self._source_name}: unexpected token {event} in record {index}",
                record_index=index,
            )

        builder = ijson.ObjectBuilder()
        depth = 0
        while True:
            builder.event(event, value)
            if event in _START_EVENTS:
                depth += 1
            elif event in _END_EVENTS:
                depth -= 1
                if depth == 0:
                    return builder.value
            event, value = self._next(tokens, f"record {index}")

    def _skip_value(self, tokens: Iterator[Token], event: str, index: int) -> None:
        """Consume the value starting at ``event`` without building it."""
        depth = 1 if event in _START_EVENTS else 0
        while depth:
            event, _ = self._next(tokens, f"record {index}")
            if event in _START_EVENTS:
                depth += 1
            elif event in _END_EVENTS:
                depth -= 1

    def _to_events(self, record: _Record) -> List[WriteEvent]:
        """Build all events of a record, validating its blocks before any is emitted."""
        owner = EntityRef(record.entity_id, record.entity_type)
        events: List[WriteEvent] = [
            EntityWrite(record.entity_id, record.entity_type, record.properties)
        ]

        for key, block in record.blocks:
            if not isinstance(block, dict):
                raise ParseError(
                    f"{self._source_name}: '{key}' of record {record.index} is not an object",
                    record_index=record.index,
                )
            if key == CONNECTIONS_KEY:
                events.extend(self._connections(owner, block, record.index))
            else:
                events.extend(self._dictionaries(owner, block, record.index))
        return events

    def _connections(
        self, owner: EntityRef, block: Dict[str, Any], index: int
    ) -> Iterator[ConnectionWrite]:
        for relation_type, targets in block.items():
            if not isinstance(targets, list):
                raise ParseError(
                    f"{self._source_name}: connections '{relation_type}' of record {index} "
                    f"is not a list",
                    record_index=index,
                )
            for target in targets:
                if not isinstance(target, str) or not target:
                    raise ParseError(
                        f"{self._source_name}: connection target {target!r} of record "
                        f"{index} is not an id",
                        record_index=index,
                    )
                yield ConnectionWrite(owner, relation_type, EntityRef(target))

    def _dictionaries(
        self, owner: EntityRef, block: Dict[str, Any], index: int
    ) -> Iterator[DictionaryWrite]:
        for name, entries in block.items():
            if not isinstance(entries, dict):
                raise ParseError(
                    f"{self._source_name}: dictionary '{name}' of record {index} is not an object",
                    record_index=index,
                )
            yield DictionaryWrite(owner, name, entries)


def iter_file(path: Path, checkpoint_id: Optional[str] = None) -> Iterator[WriteEvent]:
    """Produce the write events of the file at ``path``, closing it when done."""
    path = Path(path)
    with path.open("rb") as stream:
        yield from WriteEventProducer(stream, checkpoint_id, source_name=path.name)
