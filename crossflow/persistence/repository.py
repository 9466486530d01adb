"""Repository abstraction for workflow snapshot persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..contracts import StateSnapshot


class SnapshotRepository(Protocol):
    """Protocol for snapshot storage backends.

    Each workflow id maps to exactly one current snapshot; saving replaces
    whatever was stored for that id before.
    """

    async def save(self, snapshot: StateSnapshot) -> None:
        """Persist ``snapshot`` as the current one for its workflow id."""

    async def load(self, workflow_id: str) -> StateSnapshot | None:
        """Return the current snapshot for ``workflow_id`` if any."""

    async def list_snapshots(self) -> list[StateSnapshot]:
        """Return the current snapshot of every stored workflow."""

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete snapshots last written before ``cutoff``; return how many."""

    async def close(self) -> None:
        """Release connections held by the backend (no-op by default)."""
