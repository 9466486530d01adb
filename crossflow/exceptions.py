"""Exception types raised by crossflow components."""

from __future__ import annotations

from typing import Optional


class CrossflowError(Exception):
    """Base class for crossflow errors."""


class StepFailed(CrossflowError):
    """Raised by a step body to fail with an explicit recoverability flag.

    When ``recoverable`` is ``None`` the step definition's flag applies.
    """

    def __init__(self, message: str, recoverable: Optional[bool] = None) -> None:
        super().__init__(message)
        self.recoverable = recoverable


class StepTimeoutError(CrossflowError):
    """A step did not settle before its deadline."""

    def __init__(self, step_name: str, timeout: float) -> None:
        super().__init__(f"Step '{step_name}' timed out after {timeout:g}s")
        self.step_name = step_name
        self.timeout = timeout


class WorkflowCancelled(CrossflowError):
    """Raised by cooperative step bodies that observe a cancellation request."""


class PersistenceError(CrossflowError):
    """Snapshot storage could not be read or written."""


class SessionError(CrossflowError):
    """An application session is unknown or could not be opened."""
