"""Core data contracts for crossflow workflows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .utils.codec import DataDeserializer, DataSerializer


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowStatus(str, Enum):
    """Workflow-level lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    """Lifecycle states of a single step result."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ValidationResult(BaseModel):
    """Outcome of a pre-flight check."""

    valid: bool = True
    errors: List[str] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False


class WorkflowError(BaseModel):
    """Error recorded when a step fails."""

    model_config = ConfigDict(frozen=True)

    step_number: int
    message: str
    recoverable: bool = False
    timestamp: datetime = Field(default_factory=utcnow)
    application: Optional[str] = None
    error_type: Optional[str] = None
    screenshot: Optional[str] = None


class StepResult(BaseModel):
    """Outcome of one attempted step."""

    step_number: int
    name: str
    application: str
    status: StepStatus = StepStatus.PENDING
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    error: Optional[WorkflowError] = None
    data: Any = None
    retries: int = 0
    screenshots: List[str] = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def _restore_data(cls, value: Any) -> Any:
        return DataDeserializer.decode(value)

    @field_serializer("data", when_used="json")
    def _encode_data(self, value: Any) -> Any:
        return DataSerializer.encode(value)

    @property
    def duration(self) -> Optional[float]:
        """Seconds between start and end, ``None`` while unsettled."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def settle(
        self, status: StepStatus, error: Optional[WorkflowError] = None
    ) -> None:
        """Close a running result with its final status."""
        self.end_time = utcnow()
        self.status = status
        self.error = error


class WorkflowContext(BaseModel):
    """Mutable execution state handed to every step."""

    workflow_id: str = Field(
        default_factory=lambda: f"workflow_{uuid.uuid4().hex[:12]}"
    )
    name: str = "workflow"
    status: WorkflowStatus = WorkflowStatus.PENDING
    start_time: datetime = Field(default_factory=utcnow)
    current_step: int = 0
    total_steps: int = 0
    current_application: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    step_results: List[StepResult] = Field(default_factory=list)
    errors: List[WorkflowError] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _restore_data(cls, value: Any) -> Any:
        return DataDeserializer.decode(value)

    @field_serializer("data", when_used="json")
    def _encode_data(self, value: Dict[str, Any]) -> Dict[str, Any]:
        # datetime, tuple and set values survive a JSON round trip
        return DataSerializer.encode(value)

    def completed_steps(self) -> List[StepResult]:
        return [r for r in self.step_results if r.status == StepStatus.COMPLETED]

    def failed_steps(self) -> List[StepResult]:
        return [r for r in self.step_results if r.status == StepStatus.FAILED]

    def clone(self) -> "WorkflowContext":
        """Return a structural deep copy that keeps field types intact."""
        return self.model_copy(deep=True)


StepCallable = Callable[[WorkflowContext], Any]
PreflightCallable = Callable[[WorkflowContext], Any]


class StepDefinition(BaseModel):
    """A named unit of work bound to a logical application.

    ``execute`` may be a plain function or a coroutine function. Plain
    functions run in a worker thread so they cannot block the event loop.
    ``preflight`` is an optional check run by ``Workflow.validate`` that
    returns a list of error strings (or ``None``/empty when valid).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    application: str
    execute: StepCallable
    timeout: Optional[float] = Field(default=None, gt=0)
    recoverable: bool = False
    store_as: Optional[str] = None
    preflight: Optional[PreflightCallable] = None


class StateSnapshot(BaseModel):
    """Timestamped copy of a workflow context.

    Serialized with camelCase ``workflowId`` so the persisted document reads
    ``{id, workflowId, timestamp, state, metadata}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(
        default_factory=lambda: f"snapshot_{uuid.uuid4().hex[:12]}"
    )
    workflow_id: str = Field(alias="workflowId")
    timestamp: datetime = Field(default_factory=utcnow)
    state: WorkflowContext
    metadata: Optional[Dict[str, Any]] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, data: str) -> "StateSnapshot":
        return cls.model_validate_json(data)


class StateTransition(BaseModel):
    """Audit entry for a workflow status change."""

    from_status: WorkflowStatus
    to_status: WorkflowStatus
    timestamp: datetime = Field(default_factory=utcnow)
    reason: Optional[str] = None


class WorkflowMetrics(BaseModel):
    """Execution metrics derived from a context's step history."""

    total_duration: float = 0.0
    step_durations: Dict[str, float] = Field(default_factory=dict)
    error_count: int = 0
    retry_count: int = 0
    application_switches: int = 0
    success_rate: float = 0.0
