"""Shared SQLite connections for the read state database."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock, RLock
from typing import Dict, Iterator

# one entry per schema version; a database at user_version N runs the rest
_MIGRATIONS: tuple[tuple[str, ...], ...] = (
    (
        """
        CREATE TABLE IF NOT EXISTS read_filter_state (
            task_key TEXT PRIMARY KEY,
            payload TEXT NOT NULL,
            updated_at TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS entry_to_msg_map (
            task_key TEXT NOT NULL,
            entry_id TEXT NOT NULL,
            message_id INTEGER NOT NULL,
            PRIMARY KEY (task_key, entry_id)
        )
        """,
    ),
)

SCHEMA_VERSION = len(_MIGRATIONS)


@dataclass
class _Database:
    conn: sqlite3.Connection
    lock: RLock = field(default_factory=RLock)


def _migrate(conn: sqlite3.Connection) -> None:
    current = conn.execute("PRAGMA user_version").fetchone()[0]
    if current > SCHEMA_VERSION:
        raise sqlite3.DatabaseError(f"state database schema v{current} is newer than supported v{SCHEMA_VERSION}")
    with conn:
        for statements in _MIGRATIONS[current:]:
            for statement in statements:
                conn.execute(statement)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")


class SQLiteManager:
    """One connection per database file, shared by every task and thread.

    Statements go through ``transaction``, which holds the file's lock and
    commits (or rolls back) when the block exits.
    """

    def __init__(self, busy_timeout: float = 5.0) -> None:
        self.busy_timeout = busy_timeout
        self._databases: Dict[Path, _Database] = {}
        self._lock = Lock()

    def _open(self, path: Path) -> _Database:
        with self._lock:
            database = self._databases.get(path)
            if database is None:
                path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(path, timeout=self.busy_timeout, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                try:
                    _migrate(conn)
                except sqlite3.Error:
                    conn.close()
                    raise
                database = self._databases[path] = _Database(conn)
            return database

    @contextmanager
    def transaction(self, path: Path) -> Iterator[sqlite3.Connection]:
        database = self._open(path)
        with database.lock, database.conn:
            yield database.conn

    def _forget(self, path: Path) -> None:
        database = self._databases.pop(path, None)
        if database is not None:
            database.conn.close()

    def reset(self, path: Path) -> None:
        """Close ``path`` and delete the file; the next use recreates it empty."""

        with self._lock:
            self._forget(path)
        path.unlink(missing_ok=True)

    def close_all(self) -> None:
        with self._lock:
            for path in list(self._databases):
                self._forget(path)


__all__ = ["SCHEMA_VERSION", "SQLiteManager"]
