# SPDX-License-Identifier: Apache-2.0
"""SQLite connection pool with WAL mode for concurrent job record updates.

Connections are handed out one per borrower, so worker threads, the
scheduler and CLI commands can touch the same database without sharing a
connection object.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_pools: dict[str, list[sqlite3.Connection]] = {}

__all__ = ["connection", "get_pool", "close_all_pools", "get_pool_stats"]


def _init_conn(path: Path) -> sqlite3.Connection:
    """Initialize a new SQLite connection with WAL and a busy timeout."""
    conn = sqlite3.connect(
        str(path), check_same_thread=False, isolation_level=None  # autocommit mode
    )
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA busy_timeout=5000;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")

    logger.debug(f"Initialized SQLite connection for {path}")
    return conn


def get_pool(path: Path) -> list[sqlite3.Connection]:
    """Get or create the connection pool for a database path."""
    path_str = str(path)

    with _lock:
        if path_str not in _pools:
            _pools[path_str] = [_init_conn(path)]
            logger.info(f"Created new connection pool for {path}")

        return _pools[path_str]


@contextmanager
def connection(path: Path) -> Generator[sqlite3.Connection, None, None]:
    """Borrow a connection from the pool.

    Example:
        with connection(Path("data/db/imports.db")) as conn:
            rows = conn.execute("SELECT * FROM import_jobs").fetchall()
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    pool = get_pool(path)

    with _lock:
        conn = pool.pop() if pool else _init_conn(path)

    try:
        yield conn
    finally:
        with _lock:
            pool.append(conn)


def close_all_pools() -> None:
    """Close all connections in all pools. Used for testing/cleanup."""
    with _lock:
        for path_str, pool in _pools.items():
            for conn in pool:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for {path_str}: {e}")
        _pools.clear()
        logger.info("Closed all connection pools")


def get_pool_stats() -> dict[str, int]:
    """Get the number of idle connections per database."""
    with _lock:
        return {path: len(pool) for path, pool in _pools.items()}
