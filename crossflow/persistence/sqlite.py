"""SQLite implementation of the snapshot repository."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..contracts import StateSnapshot
from ..exceptions import PersistenceError
from .repository import SnapshotRepository

logger = logging.getLogger(__name__)


class SQLiteSnapshotRepository(SnapshotRepository):
    """Persist snapshots using SQLite, one row per workflow id."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_states (
                workflow_id TEXT PRIMARY KEY,
                snapshot_id TEXT NOT NULL,
                saved_at TEXT NOT NULL,
                document TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    # ------------------------------------------------------------------
    # Repository API
    async def save(self, snapshot: StateSnapshot) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                """
                INSERT INTO workflow_states (workflow_id, snapshot_id, saved_at, document)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(workflow_id) DO UPDATE SET
                    snapshot_id = excluded.snapshot_id,
                    saved_at = excluded.saved_at,
                    document = excluded.document
                """,
                snapshot.workflow_id,
                snapshot.id,
                snapshot.timestamp.isoformat(),
                snapshot.to_json(),
            )
        except (sqlite3.Error, ValueError) as e:
            raise PersistenceError(
                f"Failed to write state for {snapshot.workflow_id}: {e}"
            ) from e

    async def load(self, workflow_id: str) -> StateSnapshot | None:
        try:
            row = await asyncio.to_thread(
                self._fetchone,
                "SELECT document FROM workflow_states WHERE workflow_id = ?",
                workflow_id,
            )
            if not row:
                return None
            return StateSnapshot.from_json(row["document"])
        except (sqlite3.Error, ValidationError) as e:
            raise PersistenceError(f"Failed to read state for {workflow_id}: {e}") from e

    async def list_snapshots(self) -> list[StateSnapshot]:
        try:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT workflow_id, document FROM workflow_states ORDER BY saved_at",
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list states: {e}") from e

        snapshots: list[StateSnapshot] = []
        for row in rows:
            try:
                snapshots.append(StateSnapshot.from_json(row["document"]))
            except ValidationError as e:
                logger.warning(
                    f"Skipping unreadable state row {row['workflow_id']}: {e}"
                )
        return snapshots

    async def delete_older_than(self, cutoff: datetime) -> int:
        try:
            return await asyncio.to_thread(
                self._execute,
                "DELETE FROM workflow_states WHERE saved_at < ?",
                cutoff.isoformat(),
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to clean states: {e}") from e

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)
