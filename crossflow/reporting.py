"""Plain-text rendering of workflow summaries and reports."""

from __future__ import annotations

from typing import Iterable, Optional

from .contracts import (
    StateTransition,
    StepStatus,
    WorkflowContext,
    WorkflowMetrics,
)


def format_duration(seconds: Optional[float]) -> str:
    """Render seconds as ``850ms``, ``12.3s`` or ``4m 5s``."""
    if seconds is None:
        return "N/A"
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rest = divmod(int(seconds), 60)
    return f"{minutes}m {rest}s"


def render_summary(context: WorkflowContext, metrics: WorkflowMetrics) -> str:
    lines = [
        f"Workflow Status: {context.status.value}",
        f"Progress: {context.current_step}/{context.total_steps} steps",
        f"Success Rate: {metrics.success_rate * 100:.1f}%",
        f"Duration: {format_duration(metrics.total_duration)}",
        f"Errors: {metrics.error_count}",
        f"Retries: {metrics.retry_count}",
        f"App Switches: {metrics.application_switches}",
    ]
    return "\n".join(lines)


def render_report(
    context: WorkflowContext,
    metrics: WorkflowMetrics,
    transitions: Iterable[StateTransition] = (),
) -> str:
    """Full report: summary, per-step detail, failures and transitions."""
    sections = [
        f"# Workflow State Report: {context.name} ({context.workflow_id})",
        "## Summary\n" + render_summary(context, metrics),
    ]

    details = ["## Step Details"]
    for step in context.step_results:
        block = [
            f"### Step {step.step_number}: {step.name}",
            f"- Application: {step.application}",
            f"- Status: {step.status.value}",
            f"- Duration: {format_duration(step.duration)}",
        ]
        if step.retries:
            block.append(f"- Retries: {step.retries}")
        if step.error is not None:
            block.append(f"- Error: {step.error.message}")
        details.append("\n".join(block))
    sections.append("\n\n".join(details))

    failed = [s for s in context.step_results if s.status == StepStatus.FAILED]
    if failed:
        sections.append(
            "## Failed Steps\n"
            + "\n".join(
                f"- Step {s.step_number}: {s.name} - {s.error.message if s.error else 'unknown error'}"
                for s in failed
            )
        )

    skipped = [s for s in context.step_results if s.status == StepStatus.SKIPPED]
    if skipped:
        sections.append(
            "## Skipped Steps\n"
            + "\n".join(f"- Step {s.step_number}: {s.name}" for s in skipped)
        )

    not_attempted = context.total_steps - len(context.step_results)
    if not_attempted > 0:
        sections.append(f"## Not Attempted\n- {not_attempted} step(s) never started")

    transitions = list(transitions)
    if transitions:
        sections.append(
            "## State Transitions\n"
            + "\n".join(
                f"- {t.from_status.value} -> {t.to_status.value} at {t.timestamp.isoformat()}"
                + (f" ({t.reason})" if t.reason else "")
                for t in transitions
            )
        )

    return "\n\n".join(sections) + "\n"
