"""Command line interface for inspecting persisted workflow state."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import typer

from crossflow.config import CrossflowConfig, load_config
from crossflow.contracts import StateSnapshot, WorkflowContext
from crossflow.persistence import get_repository
from crossflow.state import WorkflowStateManager

app = typer.Typer(help="CLI for crossflow workflows")

state_app = typer.Typer(help="Commands for persisted workflow state")
app.add_typer(state_app, name="state")

ConfigOption = typer.Option(None, "--config", help="Path to a crossflow YAML config")


@app.callback()
def main() -> None:
    """crossflow CLI entry point."""
    pass


def _load(config_path: Optional[str]) -> CrossflowConfig:
    config = load_config(config_path)
    logging.basicConfig(level=config.log_level.upper())
    return config


async def _list_snapshots(config: CrossflowConfig) -> List[StateSnapshot]:
    repository = get_repository(config.state)
    try:
        return await repository.list_snapshots()
    finally:
        await repository.close()


async def _load_state(manager: WorkflowStateManager) -> Optional[WorkflowContext]:
    try:
        return await manager.load_state()
    finally:
        await manager.close()


async def _clean(manager: WorkflowStateManager, days: Optional[int]) -> int:
    try:
        return await manager.clean_old_states(days)
    finally:
        await manager.close()


@state_app.command("list")
def state_list(config_path: Optional[str] = ConfigOption) -> None:
    """
    List every workflow with a persisted snapshot.

    Example:
        crossflow state list
        # Output: workflow_abc123    failed    2/3
    """
    config = _load(config_path)
    snapshots = asyncio.run(_list_snapshots(config))
    if not snapshots:
        typer.echo("No workflow states found")
        return
    for snapshot in snapshots:
        state = snapshot.state
        typer.echo(
            f"{snapshot.workflow_id}\t{state.status.value}\t"
            f"{state.current_step}/{state.total_steps}"
        )


@state_app.command("show")
def state_show(workflow_id: str, config_path: Optional[str] = ConfigOption) -> None:
    """
    Show the summary and step history of a persisted workflow.

    Example:
        crossflow state show workflow_abc123
    """
    config = _load(config_path)
    manager = WorkflowStateManager(workflow_id, config.state)
    state = asyncio.run(_load_state(manager))
    if state is None:
        typer.echo("Workflow state not found")
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {state.workflow_id} ({state.name})")
    typer.echo(manager.get_state_summary(state))
    for step in state.step_results:
        line = f"- {step.step_number}. {step.name} [{step.application}]: {step.status.value}"
        if step.error is not None:
            line += f" - {step.error.message}"
        typer.echo(line)
    recovery = manager.get_recovery_point(state)
    if recovery >= 0:
        typer.echo(f"Recoverable: resume at step {recovery + 1}")


@state_app.command("report")
def state_report(workflow_id: str, config_path: Optional[str] = ConfigOption) -> None:
    """Print the full text report of a persisted workflow."""
    config = _load(config_path)
    manager = WorkflowStateManager(workflow_id, config.state)
    state = asyncio.run(_load_state(manager))
    if state is None:
        typer.echo("Workflow state not found")
        raise typer.Exit(code=1)
    typer.echo(manager.generate_report(state))


@state_app.command("clean")
def state_clean(
    days: Optional[int] = typer.Option(
        None, "--days", help="Keep snapshots newer than this many days"
    ),
    config_path: Optional[str] = ConfigOption,
) -> None:
    """Delete persisted snapshots older than the retention window."""
    config = _load(config_path)
    manager = WorkflowStateManager("cleanup", config.state)
    cleaned = asyncio.run(_clean(manager, days))
    typer.echo(f"Removed {cleaned} workflow state(s)")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
