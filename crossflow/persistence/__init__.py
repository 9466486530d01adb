"""Persistence layer for crossflow workflow snapshots."""

from __future__ import annotations

from typing import Optional

from ..config import StateConfig
from .file import FileSnapshotRepository
from .inmemory import InMemorySnapshotRepository
from .repository import SnapshotRepository
from .sqlite import SQLiteSnapshotRepository


def get_repository(config: Optional[StateConfig] = None) -> SnapshotRepository:
    """Factory function to obtain a snapshot repository.

    The backend is selected from ``config.backend``. A fresh repository is
    returned on every call; callers that need shared storage pass the same
    instance around.
    """

    config = config or StateConfig()

    if config.backend == "inmemory":
        return InMemorySnapshotRepository()
    if config.backend == "file":
        return FileSnapshotRepository(config.state_dir)
    if config.backend == "sqlite":
        db_path = config.database_path or f"{config.state_dir}/workflow_states.db"
        return SQLiteSnapshotRepository(db_path)
    raise ValueError(f"Unsupported state backend: {config.backend}")


__all__ = [
    "SnapshotRepository",
    "FileSnapshotRepository",
    "SQLiteSnapshotRepository",
    "InMemorySnapshotRepository",
    "get_repository",
]
