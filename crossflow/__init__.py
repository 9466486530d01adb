"""crossflow: sequential cross-application workflow orchestration."""

from .config import CrossflowConfig, StateConfig, WorkflowOptions, load_config
from .contracts import (
    StateSnapshot,
    StateTransition,
    StepDefinition,
    StepResult,
    StepStatus,
    ValidationResult,
    WorkflowContext,
    WorkflowError,
    WorkflowMetrics,
    WorkflowStatus,
)
from .engine import Workflow
from .exceptions import (
    CrossflowError,
    PersistenceError,
    SessionError,
    StepFailed,
    StepTimeoutError,
    WorkflowCancelled,
)
from .persistence import get_repository
from .runner import RunOutcome, WorkflowRunner
from .sessions import ApplicationSession, BaseSessionProvider, InMemorySessionProvider
from .state import WorkflowStateManager

__version__ = "0.1.0"
__all__ = [
    "ApplicationSession",
    "BaseSessionProvider",
    "CrossflowConfig",
    "CrossflowError",
    "InMemorySessionProvider",
    "PersistenceError",
    "RunOutcome",
    "SessionError",
    "StateConfig",
    "StateSnapshot",
    "StateTransition",
    "StepDefinition",
    "StepFailed",
    "StepResult",
    "StepStatus",
    "StepTimeoutError",
    "ValidationResult",
    "Workflow",
    "WorkflowCancelled",
    "WorkflowContext",
    "WorkflowError",
    "WorkflowMetrics",
    "WorkflowOptions",
    "WorkflowRunner",
    "WorkflowStateManager",
    "WorkflowStatus",
    "get_repository",
    "load_config",
]
