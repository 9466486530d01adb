from datetime import datetime, timedelta, timezone

import pytest

from crossflow import (
    StepResult,
    StepStatus,
    WorkflowContext,
    WorkflowError,
    WorkflowStatus,
)

T0 = datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


def _result(number, name, application, status, started, seconds, error=None, retries=0):
    start = T0 + timedelta(seconds=started)
    return StepResult(
        step_number=number,
        name=name,
        application=application,
        status=status,
        start_time=start,
        end_time=start + timedelta(seconds=seconds),
        error=error,
        retries=retries,
    )


@pytest.fixture
def failed_context() -> WorkflowContext:
    """A, B done on two apps, C failed with a recoverable error, D never ran."""
    error = WorkflowError(
        step_number=3,
        message="Search index not ready",
        recoverable=True,
        timestamp=T0 + timedelta(seconds=6),
        application="webapp",
    )
    return WorkflowContext(
        workflow_id="wf-failed",
        name="Document to feature",
        status=WorkflowStatus.FAILED,
        start_time=T0,
        current_step=3,
        total_steps=4,
        data={"document": {"id": "doc-1", "pages": 3}},
        step_results=[
            _result(1, "Upload document", "webapp", StepStatus.COMPLETED, 0, 2),
            _result(2, "Verify indexing", "admin", StepStatus.COMPLETED, 2, 1.5, retries=1),
            _result(3, "Generate features", "webapp", StepStatus.FAILED, 3.5, 2.5, error=error),
        ],
        errors=[error],
    )
