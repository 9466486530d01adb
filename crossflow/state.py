"""Workflow state persistence, checkpoints, recovery analysis and metrics."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import StateConfig
from .contracts import (
    StateSnapshot,
    StateTransition,
    StepResult,
    StepStatus,
    WorkflowContext,
    WorkflowMetrics,
    WorkflowStatus,
    utcnow,
)
from .exceptions import PersistenceError
from .persistence import SnapshotRepository, get_repository
from .reporting import render_report, render_summary

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (PersistenceError, OSError, ValueError)


def can_recover(context: WorkflowContext) -> bool:
    """Whether a run in ``context`` could be resumed."""
    if context.status in (WorkflowStatus.COMPLETED, WorkflowStatus.CANCELLED):
        return False
    if context.status == WorkflowStatus.RUNNING:
        return True
    return any(error.recoverable for error in context.errors)


def recovery_point(context: WorkflowContext) -> int:
    """Index of the next step to execute when resuming, or -1."""
    if not can_recover(context):
        return -1
    for index in range(len(context.step_results) - 1, -1, -1):
        if context.step_results[index].status == StepStatus.COMPLETED:
            return index + 1
    return 0


class WorkflowStateManager:
    """Snapshots, checkpoints and recovery analysis for one workflow id.

    The manager never mutates a context handed to it: everything it keeps
    or returns is a deep copy. Storage is best effort, so persistence
    failures are logged and swallowed.
    """

    def __init__(
        self,
        workflow_id: str,
        config: Optional[StateConfig] = None,
        repository: Optional[SnapshotRepository] = None,
    ) -> None:
        self.workflow_id = workflow_id
        self._config = config or StateConfig()
        self._owns_repository = repository is None
        self._repository = repository or get_repository(self._config)
        self._history: List[StateSnapshot] = []
        self._transitions: List[StateTransition] = []
        self._checkpoints: Dict[str, WorkflowContext] = {}

    @property
    def repository(self) -> SnapshotRepository:
        return self._repository

    @property
    def history(self) -> List[StateSnapshot]:
        return list(self._history)

    @property
    def transitions(self) -> List[StateTransition]:
        return list(self._transitions)

    # ------------------------------------------------------------------
    # Snapshots
    async def save_state(
        self, context: WorkflowContext, metadata: Optional[Dict[str, Any]] = None
    ) -> StateSnapshot:
        """Record a snapshot in memory and persist it, replacing the last one."""
        snapshot = StateSnapshot(
            workflow_id=self.workflow_id,
            state=context.clone(),
            metadata=dict(metadata) if metadata else None,
        )
        self._history.append(snapshot)

        try:
            await self._repository.save(snapshot)
        except _STORAGE_ERRORS as e:
            logger.warning(f"Failed to persist state for {self.workflow_id}: {e}")
        return snapshot

    async def load_snapshot(self) -> Optional[StateSnapshot]:
        try:
            return await self._repository.load(self.workflow_id)
        except _STORAGE_ERRORS as e:
            logger.warning(f"Ignoring unreadable state for {self.workflow_id}: {e}")
            return None

    async def load_state(self) -> Optional[WorkflowContext]:
        """Return the last persisted context, or ``None`` if absent or corrupt."""
        snapshot = await self.load_snapshot()
        return snapshot.state if snapshot is not None else None

    def get_state_at_step(self, step_number: int) -> Optional[WorkflowContext]:
        """Latest in-memory snapshot taken at or before ``step_number``."""
        for snapshot in reversed(self._history):
            if snapshot.state.current_step <= step_number:
                return snapshot.state.clone()
        return None

    async def clean_old_states(self, days_to_keep: Optional[int] = None) -> int:
        """Delete persisted snapshots older than ``days_to_keep`` days."""
        days = self._config.days_to_keep if days_to_keep is None else days_to_keep
        cutoff = utcnow() - timedelta(days=days)
        try:
            cleaned = await self._repository.delete_older_than(cutoff)
        except _STORAGE_ERRORS as e:
            logger.warning(f"Failed to clean old states: {e}")
            return 0
        if cleaned:
            logger.info(f"Removed {cleaned} state snapshot(s) older than {days} day(s)")
        return cleaned

    async def export_history(self, output_path: str | Path) -> bool:
        """Write snapshots, transitions and latest metrics to a JSON file."""
        latest = self._history[-1].state if self._history else None
        document = {
            "workflowId": self.workflow_id,
            "snapshots": [
                s.model_dump(mode="json", by_alias=True) for s in self._history
            ],
            "transitions": [t.model_dump(mode="json") for t in self._transitions],
            "metrics": (
                self.calculate_metrics(latest).model_dump(mode="json")
                if latest is not None
                else None
            ),
        }
        path = Path(output_path)
        try:
            await asyncio.to_thread(
                path.write_text, json.dumps(document, indent=2), "utf-8"
            )
        except OSError as e:
            logger.warning(f"Failed to export history to {path}: {e}")
            return False
        return True

    async def close(self) -> None:
        """Close the repository if this manager created it."""
        if self._owns_repository:
            await self._repository.close()

    # ------------------------------------------------------------------
    # Checkpoints
    def create_checkpoint(self, name: str, context: WorkflowContext) -> None:
        self._checkpoints[name] = context.clone()

    def restore_checkpoint(self, name: str) -> Optional[WorkflowContext]:
        checkpoint = self._checkpoints.get(name)
        return checkpoint.clone() if checkpoint is not None else None

    def list_checkpoints(self) -> List[str]:
        return list(self._checkpoints)

    def record_transition(
        self,
        from_status: WorkflowStatus,
        to_status: WorkflowStatus,
        reason: Optional[str] = None,
    ) -> None:
        self._transitions.append(
            StateTransition(from_status=from_status, to_status=to_status, reason=reason)
        )

    # ------------------------------------------------------------------
    # Recovery analysis
    def can_recover(self, context: WorkflowContext) -> bool:
        return can_recover(context)

    def get_recovery_point(self, context: WorkflowContext) -> int:
        return recovery_point(context)

    # ------------------------------------------------------------------
    # Metrics and reporting
    def calculate_metrics(self, context: WorkflowContext) -> WorkflowMetrics:
        results = context.step_results
        total_duration = 0.0
        if results and results[-1].end_time is not None:
            total_duration = (
                results[-1].end_time - results[0].start_time
            ).total_seconds()

        step_durations = {
            r.name: r.duration for r in results if r.duration is not None
        }

        switches = sum(
            1
            for previous, current in zip(results, results[1:])
            if previous.application != current.application
        )

        completed = len(context.completed_steps())
        success_rate = min(completed / max(context.total_steps, 1), 1.0)

        return WorkflowMetrics(
            total_duration=total_duration,
            step_durations=step_durations,
            error_count=len(context.errors),
            retry_count=sum(r.retries for r in results),
            application_switches=switches,
            success_rate=success_rate,
        )

    def get_failed_steps(self, context: WorkflowContext) -> List[StepResult]:
        return context.failed_steps()

    def get_skipped_steps(self, context: WorkflowContext) -> List[StepResult]:
        return [r for r in context.step_results if r.status == StepStatus.SKIPPED]

    def get_step_by_name(
        self, context: WorkflowContext, name: str
    ) -> Optional[StepResult]:
        return next((r for r in context.step_results if r.name == name), None)

    def get_state_summary(self, context: WorkflowContext) -> str:
        return render_summary(context, self.calculate_metrics(context))

    def generate_report(self, context: WorkflowContext) -> str:
        return render_report(
            context, self.calculate_metrics(context), self._transitions
        )
