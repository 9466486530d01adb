"""JSON file implementation of the snapshot repository."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ..contracts import StateSnapshot
from ..exceptions import PersistenceError
from .repository import SnapshotRepository

logger = logging.getLogger(__name__)

STATE_FILE_SUFFIX = "_state.json"


class FileSnapshotRepository(SnapshotRepository):
    """Persist one ``<workflow_id>_state.json`` file per workflow."""

    def __init__(self, state_dir: str | Path):
        self.state_dir = Path(state_dir)

    def path_for(self, workflow_id: str) -> Path:
        return self.state_dir / f"{workflow_id}{STATE_FILE_SUFFIX}"

    # ------------------------------------------------------------------
    # Blocking helpers
    def _write(self, snapshot: StateSnapshot) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(snapshot.workflow_id)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(snapshot.to_json(), encoding="utf-8")
        tmp_path.replace(path)

    def _read(self, path: Path) -> StateSnapshot:
        return StateSnapshot.from_json(path.read_text(encoding="utf-8"))

    def _state_files(self) -> list[Path]:
        if not self.state_dir.exists():
            return []
        return sorted(self.state_dir.glob(f"*{STATE_FILE_SUFFIX}"))

    def _delete_older_than(self, cutoff: datetime) -> int:
        deleted = 0
        for path in self._state_files():
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            if modified < cutoff:
                path.unlink()
                deleted += 1
        return deleted

    # ------------------------------------------------------------------
    # Repository API
    async def save(self, snapshot: StateSnapshot) -> None:
        try:
            await asyncio.to_thread(self._write, snapshot)
        except (OSError, ValueError) as e:
            raise PersistenceError(
                f"Failed to write state for {snapshot.workflow_id}: {e}"
            ) from e

    async def load(self, workflow_id: str) -> StateSnapshot | None:
        path = self.path_for(workflow_id)
        if not path.exists():
            return None
        try:
            return await asyncio.to_thread(self._read, path)
        except (OSError, ValidationError, ValueError) as e:
            raise PersistenceError(f"Failed to read state from {path}: {e}") from e

    async def list_snapshots(self) -> list[StateSnapshot]:
        snapshots: list[StateSnapshot] = []
        for path in await asyncio.to_thread(self._state_files):
            try:
                snapshots.append(await asyncio.to_thread(self._read, path))
            except (OSError, ValidationError, ValueError) as e:
                logger.warning(f"Skipping unreadable state file {path}: {e}")
        return snapshots

    async def delete_older_than(self, cutoff: datetime) -> int:
        try:
            return await asyncio.to_thread(self._delete_older_than, cutoff)
        except OSError as e:
            raise PersistenceError(f"Failed to clean {self.state_dir}: {e}") from e
