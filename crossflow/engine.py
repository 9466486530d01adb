"""Sequential workflow engine for cross-application scenarios."""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from typing import Any, Callable, List, Optional, Set

from .config import CrossflowConfig, WorkflowOptions
from .contracts import (
    PreflightCallable,
    StepDefinition,
    StepResult,
    StepStatus,
    ValidationResult,
    WorkflowContext,
    WorkflowError,
    WorkflowStatus,
)
from .exceptions import StepFailed, StepTimeoutError, WorkflowCancelled
from .reporting import format_duration
from .sessions import BaseSessionProvider
from .state import WorkflowStateManager, recovery_point
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)


class Workflow:
    """Runs an ordered list of steps against one or more applications.

    Steps execute strictly one after another. A failing step never raises
    out of ``run``: it is recorded as a failed ``StepResult`` plus a
    ``WorkflowError``, and the run either stops (the default) or moves on
    when ``continue_on_error`` is set. Subclasses usually override
    ``define_steps`` and call ``add_step`` from it.
    """

    def __init__(
        self,
        name: str,
        options: Optional[WorkflowOptions] = None,
        sessions: Optional[BaseSessionProvider] = None,
        state_manager: Optional[WorkflowStateManager] = None,
        workflow_id: Optional[str] = None,
        config: Optional[CrossflowConfig] = None,
    ) -> None:
        self.name = name
        self._options_explicit = options is not None or config is not None
        if options is None:
            options = config.workflow.model_copy() if config else WorkflowOptions()
        self.options = options
        self.sessions = sessions
        self.state_manager = state_manager
        self._steps: List[StepDefinition] = []
        self._cancel_requested = False
        self._cancel_reason: Optional[str] = None
        self._late_steps: Set[asyncio.Future] = set()
        self._running = False

        context_kwargs = {"workflow_id": workflow_id} if workflow_id else {}
        self.context = WorkflowContext(name=name, **context_kwargs)

        self.define_steps()
        self.context.total_steps = len(self._steps)

    # ------------------------------------------------------------------
    # Definition
    def define_steps(self) -> None:
        """Hook for subclasses to register their steps."""
        pass

    def add_step(self, step: StepDefinition) -> StepDefinition:
        """Append ``step`` to the execution plan."""
        self._steps.append(step)
        self.context.total_steps = len(self._steps)
        return step

    def step(
        self,
        name: str,
        application: str,
        *,
        timeout: Optional[float] = None,
        recoverable: bool = False,
        store_as: Optional[str] = None,
        preflight: Optional[PreflightCallable] = None,
    ) -> Callable[[Callable[[WorkflowContext], Any]], Callable[[WorkflowContext], Any]]:
        """Decorator form of ``add_step``."""

        def decorator(func: Callable[[WorkflowContext], Any]):
            self.add_step(
                StepDefinition(
                    name=name,
                    application=application,
                    execute=func,
                    timeout=timeout,
                    recoverable=recoverable,
                    store_as=store_as,
                    preflight=preflight,
                )
            )
            return func

        return decorator

    @property
    def steps(self) -> List[StepDefinition]:
        return list(self._steps)

    @property
    def workflow_id(self) -> str:
        return self.context.workflow_id

    @property
    def state(self) -> WorkflowContext:
        return self.context

    def configure(self, config: CrossflowConfig) -> None:
        """Adopt ``config.workflow`` unless options were given at construction."""
        if self._options_explicit:
            return
        self.options = config.workflow.model_copy()
        self._options_explicit = True

    def get_data(self, key: Optional[str] = None) -> Any:
        if key is None:
            return self.context.data
        return self.context.data.get(key)

    def set_data(self, key: str, value: Any) -> None:
        self.context.data[key] = value

    # ------------------------------------------------------------------
    # Cancellation
    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation; honored before the next step starts."""
        self._cancel_requested = True
        self._cancel_reason = reason or "cancelled by caller"
        logger.info(f"Cancellation requested for {self.workflow_id}: {self._cancel_reason}")

    @property
    def cancelled(self) -> bool:
        """Step bodies may poll this to stop cooperatively."""
        return self._cancel_requested

    # ------------------------------------------------------------------
    # Validation
    async def validate(self) -> ValidationResult:
        """Pre-flight checks; subclasses extend the returned errors."""
        result = ValidationResult()
        if not self._steps:
            result.add_error("No steps defined in workflow")

        for step in self._steps:
            if step.preflight is None:
                continue
            try:
                outcome = step.preflight(self.context)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except Exception as e:
                result.add_error(f"{step.name}: preflight check raised {e}")
                continue
            if isinstance(outcome, ValidationResult):
                outcome = outcome.errors
            elif isinstance(outcome, str):
                outcome = [outcome]
            for message in outcome or []:
                result.add_error(message)
        return result

    # ------------------------------------------------------------------
    # Execution
    async def run(self) -> WorkflowContext:
        """Execute every step in insertion order and return the context.

        Running an instance a second time starts over with a fresh context
        under the same workflow id.
        """
        self._ensure_idle()
        if self.context.status != WorkflowStatus.PENDING:
            self.context = WorkflowContext(
                workflow_id=self.context.workflow_id,
                name=self.name,
                total_steps=len(self._steps),
                metadata=dict(self.context.metadata),
            )
        return await self._execute(start_index=0)

    async def resume(
        self, context: WorkflowContext, start_index: Optional[int] = None
    ) -> WorkflowContext:
        """Continue a previous run from ``start_index``.

        By default the recovery point of ``context`` is used. Results at and
        after the start index are dropped; the error list is kept.
        """
        self._ensure_idle()
        if start_index is None:
            start_index = recovery_point(context)
        if start_index < 0:
            logger.warning(f"Workflow {context.workflow_id} is not recoverable")
            return context

        start_index = min(start_index, len(context.step_results))
        resumed = context.clone()
        resumed.step_results = resumed.step_results[:start_index]
        resumed.current_step = start_index
        resumed.total_steps = len(self._steps)
        resumed.current_application = None
        self.context = resumed
        return await self._execute(start_index=start_index)

    def _ensure_idle(self) -> None:
        if self._running:
            raise RuntimeError(f"Workflow {self.workflow_id} is already running")

    async def _execute(self, start_index: int) -> WorkflowContext:
        context = self.context
        self._running = True
        reason = "started" if start_index == 0 else f"resumed at step {start_index + 1}"
        self._transition(WorkflowStatus.RUNNING, reason)
        logger.info(f"Starting workflow: {self.name} ({context.workflow_id}), {reason}")

        opened = await self._open_sessions()
        interrupted = False
        try:
            if opened:
                for index in range(start_index, len(self._steps)):
                    if self._cancel_requested:
                        interrupted = True
                        break
                    result = await self._execute_step(self._steps[index], index + 1)
                    context.step_results.append(result)
                    context.current_step = index + 1

                    if self.options.save_after_each_step and self.state_manager:
                        await self.state_manager.save_state(
                            context, {"step": result.name, "status": result.status.value}
                        )

                    if result.error and result.error.error_type == WorkflowCancelled.__name__:
                        interrupted = True
                        break
                    if (
                        result.status == StepStatus.FAILED
                        and not self.options.continue_on_error
                    ):
                        logger.error(
                            f"Stopping workflow {context.workflow_id} after step "
                            f"{result.step_number} failed"
                        )
                        break
        finally:
            await self._close_sessions()
            self._running = False

        if interrupted:
            self._transition(WorkflowStatus.CANCELLED, self._cancel_reason)
        elif not opened or context.failed_steps():
            self._transition(WorkflowStatus.FAILED, f"{len(context.errors)} error(s)")
        else:
            self._transition(WorkflowStatus.COMPLETED)

        self._cancel_requested = False
        self._cancel_reason = None
        logger.info(
            f"Workflow {context.workflow_id} finished with status {context.status.value}"
        )
        return context

    async def _execute_step(self, step: StepDefinition, step_number: int) -> StepResult:
        result = StepResult(
            step_number=step_number,
            name=step.name,
            application=step.application,
            status=StepStatus.RUNNING,
        )
        logger.info(f"Executing step {step_number}: {step.name} ({step.application})")
        max_attempts = 1 + self.options.retry_failed_steps
        attempt = 0

        while True:
            attempt += 1
            try:
                await self._switch_to(step.application)
                value = await self._call_with_deadline(step)
            except Exception as e:
                if isinstance(e, WorkflowCancelled):
                    self.cancel(str(e) or None)
                elif attempt < max_attempts:
                    result.retries += 1
                    logger.warning(
                        f"Retrying step {step_number} (attempt {attempt + 1}/{max_attempts}): {e}"
                    )
                    await schedule_retry(
                        attempt,
                        self.options.retry_delay,
                        base=self.options.retry_backoff,
                        jitter=self.options.retry_jitter,
                    )
                    continue

                error = self._error_for(step, step_number, e)
                screenshot = await self._capture(step, step_number, failed=True)
                if screenshot:
                    error = error.model_copy(update={"screenshot": screenshot})
                result.settle(StepStatus.FAILED, error)
                self.context.errors.append(error)
                logger.error(f"Step {step_number} ({step.name}) failed: {error.message}")
                return result

            result.data = value
            result.settle(StepStatus.COMPLETED)
            if step.store_as:
                self.context.data[step.store_as] = value
            screenshot = await self._capture(step, step_number)
            if screenshot:
                result.screenshots.append(screenshot)
            logger.info(
                f"Step {step_number} ({step.name}) completed in {format_duration(result.duration)}"
            )
            return result

    async def _call_with_deadline(self, step: StepDefinition) -> Any:
        timeout = step.timeout or self.options.timeout
        task = asyncio.ensure_future(self._invoke(step))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task not in done:
            # the body keeps running; its outcome is only logged
            self._late_steps.add(task)
            task.add_done_callback(self._late_step_done)
            raise StepTimeoutError(step.name, timeout)
        return task.result()

    async def _invoke(self, step: StepDefinition) -> Any:
        if inspect.iscoroutinefunction(step.execute):
            return await step.execute(self.context)
        value = await asyncio.to_thread(step.execute, self.context)
        if inspect.isawaitable(value):
            value = await value
        return value

    def _late_step_done(self, task: asyncio.Future) -> None:
        self._late_steps.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Timed-out step body later failed: {exc}")
        else:
            logger.debug("Timed-out step body finished after its deadline")

    def _error_for(
        self, step: StepDefinition, step_number: int, exc: BaseException
    ) -> WorkflowError:
        recoverable = step.recoverable
        if isinstance(exc, StepFailed) and exc.recoverable is not None:
            recoverable = exc.recoverable
        return WorkflowError(
            step_number=step_number,
            message=str(exc) or type(exc).__name__,
            recoverable=recoverable,
            application=step.application,
            error_type=type(exc).__name__,
        )

    def _transition(self, to_status: WorkflowStatus, reason: Optional[str] = None) -> None:
        from_status = self.context.status
        self.context.status = to_status
        if self.state_manager is not None:
            self.state_manager.record_transition(from_status, to_status, reason)

    # ------------------------------------------------------------------
    # Sessions
    def required_applications(self) -> List[str]:
        return list(dict.fromkeys(step.application for step in self._steps))

    async def _open_sessions(self) -> bool:
        if self.sessions is None:
            return True
        try:
            for application in self.required_applications():
                await self.sessions.open(application)
        except Exception as e:
            error = WorkflowError(
                step_number=0,
                message=f"Failed to open application sessions: {e}",
                error_type=type(e).__name__,
            )
            self.context.errors.append(error)
            logger.error(error.message)
            return False
        return True

    async def _switch_to(self, application: str) -> None:
        if self.sessions is not None and self.context.current_application != application:
            await self.sessions.activate(application)
        self.context.current_application = application

    async def _close_sessions(self) -> None:
        if self.sessions is None:
            return
        try:
            await self.sessions.close()
        except Exception as e:
            logger.warning(f"Failed to close application sessions: {e}")

    async def _capture(
        self, step: StepDefinition, step_number: int, failed: bool = False
    ) -> Optional[str]:
        if not self.options.capture_screenshots or self.sessions is None:
            return None
        slug = re.sub(r"\s+", "_", step.name)
        label = f"{self.workflow_id}_step{step_number}_{slug}" + ("_error" if failed else "")
        try:
            return await self.sessions.capture_screenshot(step.application, label)
        except Exception as e:
            logger.warning(f"Failed to capture screenshot: {e}")
            return None
