# SPDX-License-Identifier: Apache-2.0
"""Domain services for scope resolution, source location and aggregation."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from .entities import JobState
from .errors import ConfigurationError
from .value_objects import ImportScope, ScopeType

ORGANIZATION_ID_KEY = "organizationId"
APPLICATION_ID_KEY = "applicationId"
COLLECTION_NAME_KEY = "collectionName"


def _config_value(config: Mapping[str, Any], key: str) -> Optional[str]:
    value = config.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def resolve_scope(config: Optional[Mapping[str, Any]]) -> ImportScope:
    """Resolve the scope of an import request.

    A collection name selects collection scope, otherwise an application id
    selects application scope, otherwise the import covers the whole
    organization.

    Raises:
        ConfigurationError: If the organization id is missing, or a
            collection name is given without an application id
    """
    if config is None:
        raise ConfigurationError("import configuration is required")

    organization_id = _config_value(config, ORGANIZATION_ID_KEY)
    if organization_id is None:
        raise ConfigurationError(f"{ORGANIZATION_ID_KEY} is required")

    application_id = _config_value(config, APPLICATION_ID_KEY)
    collection_name = _config_value(config, COLLECTION_NAME_KEY)

    if collection_name is not None:
        if application_id is None:
            raise ConfigurationError(
                f"{COLLECTION_NAME_KEY} requires {APPLICATION_ID_KEY}"
            )
        return ImportScope(ScopeType.COLLECTION, organization_id, application_id, collection_name)

    if application_id is not None:
        return ImportScope(ScopeType.APPLICATION, organization_id, application_id)

    return ImportScope(ScopeType.ORGANIZATION, organization_id)


def prepare_path_prefix(
    scope_type: ScopeType, name: str, collection_name: Optional[str] = None
) -> str:
    """Build the blob key prefix for a scope.

    Organization exports live under ``"<org>/"``; application exports are
    named ``"<app>.<collection>.<n>.json"``.

    >>> prepare_path_prefix(ScopeType.ORGANIZATION, "acme")
    'acme/'
    >>> prepare_path_prefix(ScopeType.APPLICATION, "app1", "coll1")
    'app1.coll1.'
    """
    if scope_type is ScopeType.ORGANIZATION:
        return f"{name}/"
    if scope_type is ScopeType.APPLICATION:
        prefix = f"{name}."
        if collection_name:
            prefix += f"{collection_name}."
        return prefix
    return ""


def partition_for_file(key: str) -> str:
    """Storage partition of a source file: its key up to the first ``.``."""
    return key.split(".", 1)[0]


def aggregate_import_state(states: Iterable[JobState]) -> Optional[JobState]:
    """Roll sibling file states up into the parent import state.

    Returns ``FAILED`` if any sibling failed, ``FINISHED`` if there is at
    least one sibling and all finished, otherwise ``None`` (parent unchanged).
    """
    states = list(states)
    if any(state is JobState.FAILED for state in states):
        return JobState.FAILED
    if states and all(state is JobState.FINISHED for state in states):
        return JobState.FINISHED
    return None
