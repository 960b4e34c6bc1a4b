# SPDX-License-Identifier: Apache-2.0
"""SQLite entity store used as the import target.

Every write is idempotent so that records re-applied after a resume leave
the store unchanged.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from importpipe.infrastructure.sqlite_pool import connection
from importpipe.migrations import apply_pending

from ..domain.collaborators import IEntityStore
from ..domain.errors import WriteError
from ..domain.value_objects import EntityRef


class SqliteEntityStore(IEntityStore):
    """One partition of the entity store."""

    def __init__(self, db_path: str | Path, partition: str):
        self._db_path = Path(db_path)
        self.partition = partition

    def create(self, entity_id: str, entity_type: str, properties: Dict[str, Any]) -> None:
        self._write(
            "INSERT OR REPLACE INTO entities (partition, id, type, properties) VALUES (?, ?, ?, ?)",
            (self.partition, entity_id, entity_type, json.dumps(properties)),
            f"create {entity_type}:{entity_id}",
        )

    def create_connection(self, owner: EntityRef, relation_type: str, target: EntityRef) -> None:
        self._write(
            """
            INSERT OR IGNORE INTO entity_connections
            (partition, owner_id, relation_type, target_id) VALUES (?, ?, ?, ?)
            """,
            (self.partition, owner.id, relation_type, target.id),
            f"connect {owner} -{relation_type}-> {target}",
        )

    def add_to_dictionary(
        self, owner: EntityRef, dictionary_name: str, entries: Dict[str, Any]
    ) -> None:
        rows = [
            (self.partition, owner.id, dictionary_name, key, json.dumps(value))
            for key, value in entries.items()
        ]
        try:
            with connection(self._db_path) as conn:
                # one transaction so a dictionary is merged whole or not at all
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.executemany(
                        """
                        INSERT OR REPLACE INTO entity_dictionaries
                        (partition, owner_id, dictionary_name, entry_key, entry_value)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        rows,
                    )
                except sqlite3.Error:
                    conn.rollback()
                    raise
                conn.commit()
        except sqlite3.Error as e:
            raise WriteError(f"Failed to update dictionary {dictionary_name} of {owner}: {e}") from e

    def get(self, entity_id: str) -> Optional[Dict[str, Any]]:
        """Return ``{"id", "type", "properties"}`` for an entity, or ``None``."""
        with connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT id, type, properties FROM entities WHERE partition = ? AND id = ?",
                (self.partition, entity_id),
            ).fetchone()
        if row is None:
            return None
        return {"id": row["id"], "type": row["type"], "properties": json.loads(row["properties"])}

    def get_connections(self, owner_id: str) -> List[Tuple[str, str]]:
        """``(relation_type, target_id)`` pairs of an entity."""
        with connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT relation_type, target_id FROM entity_connections
                WHERE partition = ? AND owner_id = ?
                ORDER BY relation_type, target_id
                """,
                (self.partition, owner_id),
            ).fetchall()
        return [(row["relation_type"], row["target_id"]) for row in rows]

    def get_dictionary(self, owner_id: str, dictionary_name: str) -> Dict[str, Any]:
        with connection(self._db_path) as conn:
            rows = conn.execute(
                """
                SELECT entry_key, entry_value FROM entity_dictionaries
                WHERE partition = ? AND owner_id = ? AND dictionary_name = ?
                """,
                (self.partition, owner_id, dictionary_name),
            ).fetchall()
        return {row["entry_key"]: json.loads(row["entry_value"]) for row in rows}

    def count(self) -> int:
        with connection(self._db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM entities WHERE partition = ?", (self.partition,)
            ).fetchone()
        return row[0]

    def _write(self, sql: str, params: tuple, action: str) -> None:
        try:
            with connection(self._db_path) as conn:
                conn.execute(sql, params)
        except sqlite3.Error as e:
            raise WriteError(f"Failed to {action}: {e}") from e


class SqliteEntityStoreFactory:
    """Builds :class:`SqliteEntityStore` instances for a partition key."""

    def __init__(self, db_path: str | Path):
        self._db_path = Path(db_path)
        apply_pending(self._db_path)

    def __call__(self, partition: str) -> SqliteEntityStore:
        return SqliteEntityStore(self._db_path, partition)
