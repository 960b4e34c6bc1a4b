# SPDX-License-Identifier: Apache-2.0
"""Import domain value objects."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union

if TYPE_CHECKING:
    from .collaborators import IEntityStore


class ScopeType(str, Enum):
    """Breadth of an import."""

    ORGANIZATION = "organization"
    APPLICATION = "application"
    COLLECTION = "collection"


@dataclass(frozen=True)
class ImportScope:
    """Resolved scope of an import request."""

    scope_type: ScopeType
    organization_id: str
    application_id: Optional[str] = None
    collection_name: Optional[str] = None

    @property
    def locator_type(self) -> ScopeType:
        """Scope type understood by the source locator.

        A collection import reads files of its application, narrowed by the
        collection name.
        """
        if self.scope_type is ScopeType.COLLECTION:
            return ScopeType.APPLICATION
        return self.scope_type


@dataclass(frozen=True)
class SourceFile:
    """A source file retrieved from blob storage.

    ``key`` is the object name under which the file was found; ``path`` is
    where a local copy can be read.
    """

    key: str
    path: Path

    @property
    def name(self) -> str:
        return self.key.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class DispatchSettings:
    """Tuning for the write dispatcher."""

    max_workers: int = 4
    checkpoint_interval: int = 2000
    heartbeat_interval: int = 100

    def __post_init__(self):
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")

        if self.checkpoint_interval <= 0:
            raise ValueError("checkpoint_interval must be positive")

        if self.heartbeat_interval <= 0:
            raise ValueError("heartbeat_interval must be positive")

    @property
    def max_in_flight(self) -> int:
        return self.max_workers * 2


@dataclass(frozen=True)
class EntityRef:
    """Reference to an entity in the target store. The type may be unknown."""

    id: str
    type: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.type}:{self.id}" if self.type else self.id


def _frozen_mapping(value: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(value))


@dataclass(frozen=True)
class EntityWrite:
    """Create one entity by id."""

    entity_id: str
    entity_type: str
    properties: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, "properties", _frozen_mapping(self.properties))

    @property
    def kind(self) -> str:
        return "entity"

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.entity_id, self.entity_type)

    def apply(self, store: IEntityStore) -> None:
        store.create(self.entity_id, self.entity_type, dict(self.properties))

    def __str__(self) -> str:
        return f"EntityWrite({self.entity_type}:{self.entity_id})"


@dataclass(frozen=True)
class ConnectionWrite:
    """Connect the owning entity to a target entity."""

    owner: EntityRef
    relation_type: str
    target: EntityRef

    @property
    def kind(self) -> str:
        return "connection"

    def apply(self, store: IEntityStore) -> None:
        store.create_connection(self.owner, self.relation_type, self.target)

    def __str__(self) -> str:
        return f"ConnectionWrite({self.owner} -{self.relation_type}-> {self.target})"


@dataclass(frozen=True)
class DictionaryWrite:
    """Merge key/value entries into a named dictionary of the owning entity."""

    owner: EntityRef
    dictionary_name: str
    entries: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, "entries", _frozen_mapping(self.entries))

    @property
    def kind(self) -> str:
        return "dictionary"

    def apply(self, store: IEntityStore) -> None:
        store.add_to_dictionary(self.owner, self.dictionary_name, dict(self.entries))

    def __str__(self) -> str:
        return f"DictionaryWrite({self.owner} {self.dictionary_name})"


WriteEvent = Union[EntityWrite, ConnectionWrite, DictionaryWrite]
