"""In-memory implementation of the snapshot repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict

from ..contracts import StateSnapshot
from .repository import SnapshotRepository


class InMemorySnapshotRepository(SnapshotRepository):
    """Store snapshots in local memory.

    Useful for tests or when nothing should touch the disk. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._documents: Dict[str, str] = {}
        self._written_at: Dict[str, datetime] = {}

    async def save(self, snapshot: StateSnapshot) -> None:
        # kept as JSON so loads behave like the durable backends
        self._documents[snapshot.workflow_id] = snapshot.to_json()
        self._written_at[snapshot.workflow_id] = snapshot.timestamp

    async def load(self, workflow_id: str) -> StateSnapshot | None:
        document = self._documents.get(workflow_id)
        if document is None:
            return None
        return StateSnapshot.from_json(document)

    async def list_snapshots(self) -> list[StateSnapshot]:
        return [StateSnapshot.from_json(doc) for doc in self._documents.values()]

    async def delete_older_than(self, cutoff: datetime) -> int:
        stale = [wid for wid, ts in self._written_at.items() if ts < cutoff]
        for workflow_id in stale:
            del self._documents[workflow_id]
            del self._written_at[workflow_id]
        return len(stale)
