"""Workflow engine tests."""

import asyncio

import pytest

from crossflow import (
    CrossflowConfig,
    InMemorySessionProvider,
    StepDefinition,
    StepFailed,
    StepStatus,
    Workflow,
    WorkflowCancelled,
    WorkflowContext,
    WorkflowOptions,
    WorkflowStateManager,
    WorkflowStatus,
)
from crossflow.persistence import InMemorySnapshotRepository


def _manager(workflow_id="wf"):
    return WorkflowStateManager(workflow_id, repository=InMemorySnapshotRepository())


def _three_step_workflow(continue_on_error: bool, calls: list) -> Workflow:
    workflow = Workflow(
        "cross-app",
        options=WorkflowOptions(continue_on_error=continue_on_error),
        workflow_id="wf",
    )

    async def step_a(ctx: WorkflowContext):
        calls.append("A")
        return {"document_id": "doc-1"}

    async def step_b(ctx: WorkflowContext):
        calls.append("B")
        raise RuntimeError("indexing not finished")

    async def step_c(ctx: WorkflowContext):
        calls.append("C")
        return "done"

    workflow.add_step(StepDefinition(name="A", application="webapp", execute=step_a, store_as="upload"))
    workflow.add_step(StepDefinition(name="B", application="admin", execute=step_b, recoverable=True))
    workflow.add_step(StepDefinition(name="C", application="webapp", execute=step_c))
    return workflow


@pytest.mark.asyncio
async def test_failure_stops_run_by_default():
    calls = []
    workflow = _three_step_workflow(continue_on_error=False, calls=calls)

    context = await workflow.run()

    assert context.status == WorkflowStatus.FAILED
    assert calls == ["A", "B"]
    assert len(context.step_results) == 2
    assert len(context.step_results) == context.current_step
    assert [r.status for r in context.step_results] == [StepStatus.COMPLETED, StepStatus.FAILED]
    assert context.data == {"upload": {"document_id": "doc-1"}}

    assert len(context.errors) == 1
    error = context.errors[0]
    assert error.step_number == 2
    assert error.recoverable is True
    assert error.message == "indexing not finished"
    assert error.error_type == "RuntimeError"

    manager = _manager()
    assert manager.can_recover(context) is True
    assert manager.get_recovery_point(context) == 1


@pytest.mark.asyncio
async def test_continue_on_error_attempts_every_step():
    calls = []
    workflow = _three_step_workflow(continue_on_error=True, calls=calls)

    context = await workflow.run()

    assert context.status == WorkflowStatus.FAILED
    assert calls == ["A", "B", "C"]
    assert len(context.step_results) == context.total_steps == 3
    assert context.current_step == 3
    assert [r.status for r in context.step_results] == [
        StepStatus.COMPLETED,
        StepStatus.FAILED,
        StepStatus.COMPLETED,
    ]


@pytest.mark.asyncio
async def test_all_steps_completed():
    workflow = Workflow("ok")
    workflow.add_step(StepDefinition(name="one", application="webapp", execute=lambda c: 1, store_as="x"))
    workflow.add_step(StepDefinition(name="two", application="webapp", execute=lambda c: c.data["x"] + 1, store_as="x"))

    context = await workflow.run()

    assert context.status == WorkflowStatus.COMPLETED
    assert context.errors == []
    assert context.data["x"] == 2
    assert [r.data for r in context.step_results] == [1, 2]
    assert all(r.end_time is not None for r in context.step_results)


@pytest.mark.asyncio
async def test_step_timeout_is_recorded_as_failure():
    release = asyncio.Event()
    finished = []

    async def slow(ctx):
        await release.wait()
        finished.append(True)
        return "late"

    workflow = Workflow("timeouts", workflow_id="wf-timeout")
    workflow.add_step(StepDefinition(name="fast", application="webapp", execute=lambda c: "ok"))
    workflow.add_step(StepDefinition(name="slow", application="admin", execute=slow, timeout=0.1, store_as="slow"))

    context = await workflow.run()

    assert context.status == WorkflowStatus.FAILED
    slow_result = context.step_results[1]
    assert slow_result.status == StepStatus.FAILED
    assert "timed out" in slow_result.error.message
    assert slow_result.error.error_type == "StepTimeoutError"
    assert slow_result.duration < 0.5
    assert "slow" not in context.data

    metrics = _manager().calculate_metrics(context)
    assert metrics.total_duration == pytest.approx(
        (slow_result.end_time - context.step_results[0].start_time).total_seconds()
    )

    # the abandoned body still runs to completion
    release.set()
    for _ in range(10):
        if finished:
            break
        await asyncio.sleep(0.01)
    assert finished == [True]
    assert context.step_results[1].status == StepStatus.FAILED


@pytest.mark.asyncio
async def test_workflow_default_timeout_applies():
    release = asyncio.Event()

    async def slow(ctx):
        await release.wait()

    workflow = Workflow("timeouts", options=WorkflowOptions(timeout=0.05))
    workflow.add_step(StepDefinition(name="slow", application="webapp", execute=slow))

    context = await workflow.run()

    assert context.step_results[0].status == StepStatus.FAILED
    assert "timed out after 0.05s" in context.errors[0].message
    release.set()
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_sync_step_bodies_run_in_thread():
    def blocking(ctx):
        return sum(range(10))

    workflow = Workflow("sync")
    workflow.add_step(StepDefinition(name="sum", application="api", execute=blocking, store_as="total"))

    context = await workflow.run()

    assert context.data["total"] == 45


@pytest.mark.asyncio
async def test_retries_are_counted_structurally():
    attempts = []

    async def flaky(ctx):
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("network blip")
        return "ok"

    workflow = Workflow("retry", options=WorkflowOptions(retry_failed_steps=2, retry_delay=0))
    workflow.add_step(StepDefinition(name="flaky", application="webapp", execute=flaky))

    context = await workflow.run()

    assert context.status == WorkflowStatus.COMPLETED
    assert len(attempts) == 3
    assert context.step_results[0].retries == 2
    assert context.errors == []
    assert _manager().calculate_metrics(context).retry_count == 2


@pytest.mark.asyncio
async def test_exhausted_retries_record_single_error():
    async def broken(ctx):
        raise ValueError("bad payload")

    workflow = Workflow("retry", options=WorkflowOptions(retry_failed_steps=1, retry_delay=0))
    workflow.add_step(StepDefinition(name="broken", application="webapp", execute=broken))

    context = await workflow.run()

    assert context.status == WorkflowStatus.FAILED
    assert context.step_results[0].retries == 1
    assert len(context.errors) == 1


@pytest.mark.asyncio
async def test_step_failed_overrides_recoverable_flag():
    async def step(ctx):
        raise StepFailed("quota exceeded", recoverable=True)

    workflow = Workflow("override")
    workflow.add_step(StepDefinition(name="generate", application="webapp", execute=step))

    context = await workflow.run()

    assert context.errors[0].recoverable is True
    assert context.errors[0].message == "quota exceeded"


@pytest.mark.asyncio
async def test_cancel_is_honored_at_step_boundary():
    workflow = Workflow("cancel", options=WorkflowOptions(continue_on_error=True))
    calls = []

    async def first(ctx):
        calls.append("first")
        workflow.cancel("operator abort")
        return "finished anyway"

    workflow.add_step(StepDefinition(name="first", application="webapp", execute=first))
    workflow.add_step(StepDefinition(name="second", application="webapp", execute=lambda c: calls.append("second")))

    context = await workflow.run()

    assert calls == ["first"]
    assert context.status == WorkflowStatus.CANCELLED
    assert [r.status for r in context.step_results] == [StepStatus.COMPLETED]
    assert context.current_step == 1
    assert _manager().can_recover(context) is False
    assert workflow.cancelled is False


@pytest.mark.asyncio
async def test_cooperative_cancellation_from_step_body():
    async def polling(ctx):
        raise WorkflowCancelled("user closed the session")

    workflow = Workflow("cancel")
    workflow.add_step(StepDefinition(name="poll", application="webapp", execute=polling))
    workflow.add_step(StepDefinition(name="never", application="webapp", execute=lambda c: 1))

    context = await workflow.run()

    assert context.status == WorkflowStatus.CANCELLED
    assert len(context.step_results) == 1


@pytest.mark.asyncio
async def test_state_manager_records_transitions_and_snapshots():
    manager = _manager("wf")
    workflow = Workflow(
        "tracked",
        options=WorkflowOptions(save_after_each_step=True),
        state_manager=manager,
        workflow_id="wf",
    )
    workflow.add_step(StepDefinition(name="a", application="webapp", execute=lambda c: 1))
    workflow.add_step(StepDefinition(name="b", application="admin", execute=lambda c: 2))

    await workflow.run()

    assert [(t.from_status, t.to_status) for t in manager.transitions] == [
        (WorkflowStatus.PENDING, WorkflowStatus.RUNNING),
        (WorkflowStatus.RUNNING, WorkflowStatus.COMPLETED),
    ]
    assert [s.state.current_step for s in manager.history] == [1, 2]
    assert manager.get_state_at_step(1).current_step == 1


@pytest.mark.asyncio
async def test_sessions_are_opened_switched_and_closed(tmp_path):
    sessions = InMemorySessionProvider(screenshot_dir=str(tmp_path))
    workflow = Workflow(
        "sessions",
        options=WorkflowOptions(capture_screenshots=True),
        sessions=sessions,
        workflow_id="wf",
    )
    workflow.add_step(StepDefinition(name="upload doc", application="webapp", execute=lambda c: 1))
    workflow.add_step(StepDefinition(name="check", application="admin", execute=lambda c: 2))
    workflow.add_step(StepDefinition(name="review", application="webapp", execute=lambda c: 3))

    context = await workflow.run()

    assert context.status == WorkflowStatus.COMPLETED
    assert workflow.required_applications() == ["webapp", "admin"]
    assert sessions.switch_history == [(None, "webapp"), ("webapp", "admin"), ("admin", "webapp")]
    assert sessions.closed is True
    assert context.step_results[0].screenshots == [f"{tmp_path}/wf_step1_upload_doc.png"]
    assert _manager().calculate_metrics(context).application_switches == 2


@pytest.mark.asyncio
async def test_session_open_failure_fails_run_without_raising():
    class BrokenSessions(InMemorySessionProvider):
        async def open(self, application):
            raise ConnectionError("browser unavailable")

    workflow = Workflow("broken", sessions=BrokenSessions())
    workflow.add_step(StepDefinition(name="a", application="webapp", execute=lambda c: 1))

    context = await workflow.run()

    assert context.status == WorkflowStatus.FAILED
    assert context.step_results == []
    assert context.errors[0].step_number == 0
    assert "browser unavailable" in context.errors[0].message


@pytest.mark.asyncio
async def test_screenshot_failures_are_ignored():
    class FlakyCamera(InMemorySessionProvider):
        async def capture_screenshot(self, application, label):
            raise OSError("disk full")

    workflow = Workflow(
        "camera", options=WorkflowOptions(capture_screenshots=True), sessions=FlakyCamera()
    )
    workflow.add_step(StepDefinition(name="a", application="webapp", execute=lambda c: 1))

    context = await workflow.run()

    assert context.status == WorkflowStatus.COMPLETED
    assert context.step_results[0].screenshots == []


@pytest.mark.asyncio
async def test_validate_reports_errors_as_data():
    empty = Workflow("empty")
    result = await empty.validate()
    assert result.valid is False
    assert result.errors == ["No steps defined in workflow"]

    async def needs_file(ctx):
        return ["fixture document missing"]

    workflow = Workflow("checked")
    workflow.add_step(
        StepDefinition(name="upload", application="webapp", execute=lambda c: 1, preflight=needs_file)
    )
    workflow.add_step(
        StepDefinition(name="ok", application="webapp", execute=lambda c: 1, preflight=lambda c: None)
    )
    result = await workflow.validate()
    assert result.valid is False
    assert result.errors == ["fixture document missing"]


@pytest.mark.asyncio
async def test_subclass_extends_steps_and_validation():
    class CredentialedWorkflow(Workflow):
        def __init__(self, token=None, **kwargs):
            self.token = token
            super().__init__("credentialed", **kwargs)

        def define_steps(self):
            self.add_step(StepDefinition(name="login", application="admin", execute=self.login))

        def login(self, ctx):
            return {"token": self.token}

        async def validate(self):
            result = await super().validate()
            if not self.token:
                result.add_error("admin credentials are not configured")
            return result

    assert (await CredentialedWorkflow().validate()).errors == [
        "admin credentials are not configured"
    ]
    workflow = CredentialedWorkflow(token="secret")
    assert workflow.context.total_steps == 1
    assert (await workflow.validate()).valid is True
    context = await workflow.run()
    assert context.step_results[0].data == {"token": "secret"}


@pytest.mark.asyncio
async def test_decorator_registers_steps_in_order():
    workflow = Workflow("decorated")

    @workflow.step("first", application="webapp", store_as="first")
    async def first(ctx):
        return 1

    @workflow.step("second", application="admin")
    def second(ctx):
        return ctx.data["first"] + 1

    context = await workflow.run()

    assert [s.name for s in workflow.steps] == ["first", "second"]
    assert context.step_results[1].data == 2


@pytest.mark.asyncio
async def test_resume_from_recovery_point():
    index_ready = {"value": False}

    async def verify(ctx):
        if not index_ready["value"]:
            raise StepFailed("index not ready", recoverable=True)
        return "indexed"

    workflow = Workflow("resumable", workflow_id="wf")
    workflow.add_step(StepDefinition(name="upload", application="webapp", execute=lambda c: "doc-1", store_as="doc"))
    workflow.add_step(StepDefinition(name="verify", application="admin", execute=verify))
    workflow.add_step(StepDefinition(name="generate", application="webapp", execute=lambda c: c.data["doc"] + ":features"))

    failed = await workflow.run()
    assert failed.status == WorkflowStatus.FAILED

    index_ready["value"] = True
    resumed = await workflow.resume(failed)

    assert resumed.status == WorkflowStatus.COMPLETED
    assert [r.name for r in resumed.step_results] == ["upload", "verify", "generate"]
    assert len(resumed.step_results) == resumed.current_step == 3
    assert resumed.step_results[2].data == "doc-1:features"
    assert len(resumed.errors) == 1
    # the failed context passed in is left untouched
    assert len(failed.step_results) == 2


@pytest.mark.asyncio
async def test_resume_refuses_unrecoverable_context():
    workflow = Workflow("done")
    workflow.add_step(StepDefinition(name="a", application="webapp", execute=lambda c: 1))
    completed = await workflow.run()

    assert await workflow.resume(completed) is completed


@pytest.mark.asyncio
async def test_running_twice_starts_fresh():
    workflow = Workflow("twice", workflow_id="wf")
    workflow.add_step(StepDefinition(name="a", application="webapp", execute=lambda c: 1))

    first = await workflow.run()
    second = await workflow.run()

    assert first is not second
    assert second.workflow_id == "wf"
    assert len(second.step_results) == 1


def test_workflow_takes_options_from_config():
    config = CrossflowConfig()
    config.workflow.continue_on_error = True
    config.workflow.retry_failed_steps = 3

    workflow = Workflow("configured", config=config)
    config.workflow.retry_failed_steps = 0

    assert workflow.options.continue_on_error is True
    assert workflow.options.retry_failed_steps == 3

    workflow.configure(CrossflowConfig())
    assert workflow.options.continue_on_error is True


def test_configure_applies_only_without_explicit_options():
    config = CrossflowConfig()
    config.workflow.timeout = 12

    defaulted = Workflow("defaulted")
    defaulted.configure(config)
    explicit = Workflow("explicit", options=WorkflowOptions(timeout=99))
    explicit.configure(config)

    assert defaulted.options.timeout == 12
    assert explicit.options.timeout == 99


@pytest.mark.asyncio
async def test_retry_backoff_options_reach_scheduler(monkeypatch):
    waits = []

    async def record(attempt, delay, base=1.0, jitter=0.0):
        waits.append((attempt, delay, base, jitter))

    monkeypatch.setattr("crossflow.engine.schedule_retry", record)

    async def broken(ctx):
        raise ConnectionError("network blip")

    workflow = Workflow(
        "backoff",
        options=WorkflowOptions(
            retry_failed_steps=2, retry_delay=0.5, retry_backoff=2.0, retry_jitter=0.1
        ),
    )
    workflow.add_step(StepDefinition(name="flaky", application="webapp", execute=broken))

    await workflow.run()

    assert waits == [(1, 0.5, 2.0, 0.1), (2, 0.5, 2.0, 0.1)]
