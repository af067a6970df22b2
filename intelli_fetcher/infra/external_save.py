"""SQLite-backed external save for read filters and entry-to-message maps."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import structlog

from ..engine.entry import EntryId, MessageId
from ..engine.errors import ExternalSaveError
from ..engine.external_save import ExternalSave
from ..engine.read_filter import ReadFilter, ReadFilterKind, build_read_filter
from .storage import SQLiteManager


class SQLiteExternalSave(ExternalSave):
    """Persist one task's state under ``task_key`` (``"<job>/<task>"``)."""

    def __init__(self, manager: SQLiteManager, db_path: Path, task_key: str) -> None:
        self.manager = manager
        self.db_path = db_path
        self.task_key = task_key
        self.logger = structlog.get_logger("intelli_fetcher.external_save").bind(task_key=task_key)

    async def save_read_filter(self, read_filter: ReadFilter) -> None:
        payload = json.dumps(read_filter.to_state(), ensure_ascii=False)
        await asyncio.to_thread(self._write_read_filter, payload)
        self.logger.debug("read_filter_saved", last_read=read_filter.last_read())

    async def save_entry_to_msg_map(self, mapping: Mapping[EntryId, MessageId]) -> None:
        rows = [(self.task_key, entry_id, msg_id) for entry_id, msg_id in mapping.items()]
        await asyncio.to_thread(self._write_entry_map, rows)
        self.logger.debug("entry_map_saved", size=len(rows))

    def _write_read_filter(self, payload: str) -> None:
        try:
            with self.manager.transaction(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO read_filter_state (task_key, payload, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(task_key) DO UPDATE SET
                        payload = excluded.payload,
                        updated_at = excluded.updated_at
                    """,
                    (self.task_key, payload, _now()),
                )
        except sqlite3.Error as exc:
            raise ExternalSaveError(f"Failed to save read filter: {exc}", self.db_path) from exc

    def _write_entry_map(self, rows: list[tuple[str, EntryId, MessageId]]) -> None:
        try:
            with self.manager.transaction(self.db_path) as conn:
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO entry_to_msg_map (task_key, entry_id, message_id)
                    VALUES (?, ?, ?)
                    """,
                    rows,
                )
        except sqlite3.Error as exc:
            raise ExternalSaveError(f"Failed to save entry map: {exc}", self.db_path) from exc

    # ------------------------------------------------------------------
    def load_state(self) -> dict[str, Any] | None:
        try:
            with self.manager.transaction(self.db_path) as conn:
                row = conn.execute(
                    "SELECT payload FROM read_filter_state WHERE task_key = ?", (self.task_key,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise ExternalSaveError(f"Failed to load read filter: {exc}", self.db_path) from exc
        if row is None:
            return None
        return json.loads(row["payload"])

    def load_read_filter(self, kind: ReadFilterKind | str) -> ReadFilter:
        """Restore the saved filter of ``kind``, or a fresh one wired to this save."""

        return build_read_filter(kind, self.load_state(), external_save=self)

    def load_entry_to_msg_map(self) -> dict[EntryId, MessageId]:
        try:
            with self.manager.transaction(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT entry_id, message_id FROM entry_to_msg_map WHERE task_key = ?",
                    (self.task_key,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise ExternalSaveError(f"Failed to load entry map: {exc}", self.db_path) from exc
        return {row["entry_id"]: row["message_id"] for row in rows}

    def reset(self) -> None:
        try:
            with self.manager.transaction(self.db_path) as conn:
                conn.execute("DELETE FROM read_filter_state WHERE task_key = ?", (self.task_key,))
                conn.execute("DELETE FROM entry_to_msg_map WHERE task_key = ?", (self.task_key,))
        except sqlite3.Error as exc:
            raise ExternalSaveError(f"Failed to reset state: {exc}", self.db_path) from exc
        self.logger.info("state_reset")

    def __repr__(self) -> str:
        return f"SQLiteExternalSave({str(self.db_path)!r}, {self.task_key!r})"


def stored_task_keys(manager: SQLiteManager, db_path: Path) -> list[str]:
    """Every task key with saved state in ``db_path``."""

    if not db_path.exists():
        return []
    with manager.transaction(db_path) as conn:
        rows = conn.execute(
            """
            SELECT task_key FROM read_filter_state
            UNION
            SELECT task_key FROM entry_to_msg_map
            ORDER BY task_key
            """
        ).fetchall()
    return [row["task_key"] for row in rows]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


__all__ = ["SQLiteExternalSave", "stored_task_keys"]
