"""Run workflows with validation, state persistence and reporting."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, Field

from .config import CrossflowConfig
from .contracts import WorkflowContext, WorkflowStatus
from .engine import Workflow
from .persistence import SnapshotRepository, get_repository
from .state import WorkflowStateManager

logger = logging.getLogger(__name__)

StateManagerFactory = Callable[[str], WorkflowStateManager]


class RunOutcome(BaseModel):
    """Result of running one workflow through ``WorkflowRunner``."""

    workflow: str
    workflow_id: str
    success: bool
    state: WorkflowContext
    validation_errors: List[str] = Field(default_factory=list)
    report: Optional[str] = None
    error: Optional[str] = None


class WorkflowRunner:
    """Validates, executes and snapshots workflows."""

    def __init__(
        self,
        config: Optional[CrossflowConfig] = None,
        state_manager_factory: Optional[StateManagerFactory] = None,
    ) -> None:
        self._config = config or CrossflowConfig()
        self._repository: Optional[SnapshotRepository] = None
        self._state_manager_factory = state_manager_factory or self._default_manager

    def _default_manager(self, workflow_id: str) -> WorkflowStateManager:
        # one repository (and one sqlite connection) for every run
        if self._repository is None:
            self._repository = get_repository(self._config.state)
        return WorkflowStateManager(
            workflow_id, self._config.state, repository=self._repository
        )

    async def close(self) -> None:
        """Release the repository shared by default state managers."""
        if self._repository is not None:
            await self._repository.close()
            self._repository = None

    def _manager_for(
        self, workflow: Workflow, state_manager: Optional[WorkflowStateManager]
    ) -> WorkflowStateManager:
        manager = state_manager or workflow.state_manager
        if manager is None:
            manager = self._state_manager_factory(workflow.workflow_id)
        if workflow.state_manager is None:
            workflow.state_manager = manager
        return manager

    async def run(
        self,
        workflow: Workflow,
        report: bool = False,
        state_manager: Optional[WorkflowStateManager] = None,
    ) -> RunOutcome:
        """Validate and run ``workflow``, then persist its final state.

        Validation failures skip execution entirely and are returned as data.
        """
        manager = self._manager_for(workflow, state_manager)
        workflow.configure(self._config)

        validation = await workflow.validate()
        if not validation.valid:
            message = f"Workflow validation failed: {', '.join(validation.errors)}"
            logger.error(message)
            state = workflow.state
            await manager.save_state(state, {"error": message})
            return RunOutcome(
                workflow=workflow.name,
                workflow_id=workflow.workflow_id,
                success=False,
                state=state.clone(),
                validation_errors=validation.errors,
                error=message,
            )

        state = await workflow.run()
        success = state.status == WorkflowStatus.COMPLETED
        error = None
        if not success:
            error = state.errors[-1].message if state.errors else state.status.value
        await manager.save_state(state, {"error": error} if error else None)

        return RunOutcome(
            workflow=workflow.name,
            workflow_id=workflow.workflow_id,
            success=success,
            state=state.clone(),
            report=manager.generate_report(state) if report else None,
            error=error,
        )

    async def run_sequence(
        self,
        workflows: Sequence[Workflow],
        continue_on_error: bool = False,
        parallel: bool = False,
    ) -> List[RunOutcome]:
        """Run several workflows, one after another or concurrently.

        Sequential runs stop at the first unsuccessful workflow unless
        ``continue_on_error`` is set. Each workflow owns its own context, so
        concurrent runs never share state.
        """
        if parallel:
            return list(await asyncio.gather(*(self.run(w) for w in workflows)))

        outcomes: List[RunOutcome] = []
        for workflow in workflows:
            outcome = await self.run(workflow)
            outcomes.append(outcome)
            if not outcome.success and not continue_on_error:
                logger.info(
                    f"Stopping sequence after {workflow.name} ({workflow.workflow_id}) failed"
                )
                break
        return outcomes
