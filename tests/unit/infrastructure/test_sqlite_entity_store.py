# SPDX-License-Identifier: Apache-2.0
"""Unit tests for the SQLite entity store."""

from __future__ import annotations

import pytest

from importpipe.imports.domain.errors import WriteError
from importpipe.imports.domain.value_objects import EntityRef
from importpipe.imports.infrastructure.entity_store import SqliteEntityStoreFactory
from importpipe.infrastructure.sqlite_pool import connection


@pytest.fixture
def factory(tmp_path):
    return SqliteEntityStoreFactory(tmp_path / "entities.db")


def test_create_and_read_back(factory):
    store = factory("acme/app1")

    store.create("u1", "user", {"name": "ann", "age": 3})

    assert store.get("u1") == {"id": "u1", "type": "user", "properties": {"name": "ann", "age": 3}}
    assert store.get("missing") is None


def test_writes_are_idempotent(factory):
    store = factory("acme/app1")
    owner = EntityRef("u1", "user")

    for _ in range(2):
        store.create("u1", "user", {"name": "ann"})
        store.create_connection(owner, "likes", EntityRef("u2"))
        store.add_to_dictionary(owner, "meta", {"k": "v"})

    assert store.count() == 1
    assert store.get_connections("u1") == [("likes", "u2")]
    assert store.get_dictionary("u1", "meta") == {"k": "v"}


def test_dictionary_entries_merge(factory):
    store = factory("acme/app1")
    owner = EntityRef("u1", "user")

    store.add_to_dictionary(owner, "meta", {"a": 1, "b": [1, 2]})
    store.add_to_dictionary(owner, "meta", {"a": 2})

    assert store.get_dictionary("u1", "meta") == {"a": 2, "b": [1, 2]}


def test_partitions_are_isolated(factory):
    first = factory("acme/app1")
    second = factory("acme/app2")

    first.create("u1", "user", {})

    assert first.count() == 1
    assert second.count() == 0
    assert second.get("u1") is None


def test_sqlite_errors_become_write_errors(factory, tmp_path):
    store = factory("acme/app1")
    with connection(tmp_path / "entities.db") as conn:
        conn.execute("DROP TABLE entities")

    with pytest.raises(WriteError, match="u1"):
        store.create("u1", "user", {})


def test_failed_dictionary_merge_leaves_no_partial_entries(factory, tmp_path):
    store = factory("acme/app1")
    with connection(tmp_path / "entities.db") as conn:
        conn.execute(
            """
            CREATE TRIGGER reject_bad_entry BEFORE INSERT ON entity_dictionaries
            WHEN NEW.entry_key = 'bad'
            BEGIN SELECT RAISE(ABORT, 'rejected entry'); END
            """
        )

    with pytest.raises(WriteError, match="meta"):
        store.add_to_dictionary(EntityRef("u1", "user"), "meta", {"a": 1, "bad": 2})

    assert store.get_dictionary("u1", "meta") == {}

    store.add_to_dictionary(EntityRef("u1", "user"), "meta", {"a": 1})
    assert store.get_dictionary("u1", "meta") == {"a": 1}
