import logging

import pytest
from sqlalchemy.future import select

from automation.core.exceptions import OrchestrationError
from automation.models import WorkflowExecution, WorkflowStepLog
from automation.services.engine import WorkflowEngine
from automation.services.executor import sanitize_output


async def step_logs(db, execution):
    result = await db.execute(
        select(WorkflowStepLog)
        .where(WorkflowStepLog.execution_id == execution.id)
        .order_by(WorkflowStepLog.position)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_all_steps_succeed(db, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow()

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "completed"
    assert execution.completed_steps_count == 3
    assert execution.failed_steps_count == 0
    assert execution.completed_at is not None
    assert execution.duration_ms is not None
    assert recorder.calls == [1, 2, 3]

    logs = await step_logs(db, execution)
    assert [log.status for log in logs] == ["completed"] * 3
    assert logs[0].input_data["config"] == {}
    assert "workflow_id" in logs[0].input_data["context_keys"]

    await db.refresh(workflow)
    assert workflow.executions_count == 1
    assert workflow.last_executed_at is not None


@pytest.mark.asyncio
async def test_step_completion_logs_progress(workflow_engine, make_workflow, caplog):
    caplog.set_level(logging.INFO, logger="automation.services.executor")
    workflow = await make_workflow(steps=[{}, {}])

    await workflow_engine.execute_sync(workflow)

    completed = [r.getMessage() for r in caplog.records if "Step completed" in r.getMessage()]
    assert completed[0].endswith("Step completed: Echo 1 (50%)")
    assert completed[1].endswith("Step completed: Echo 2 (100%)")


@pytest.mark.asyncio
async def test_failing_step_stops_execution(db, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow()
    recorder.fail_at(2)

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "failed"
    assert execution.failed_steps_count == 1
    assert execution.completed_steps_count == 1
    assert execution.error_message == "Step 'Echo 2' failed: boom"
    assert recorder.calls == [1, 2]

    logs = await step_logs(db, execution)
    assert [(log.position, log.status) for log in logs] == [(1, "completed"), (2, "failed")]
    assert logs[1].error_message == "boom"
    assert "RuntimeError" in logs[1].error_backtrace
    assert logs[1].retry_count == 1

    await db.refresh(workflow)
    assert workflow.executions_count == 0


@pytest.mark.asyncio
async def test_continue_on_failure_runs_later_steps(db, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow(steps=[{}, {"continue_on_failure": True}, {}])
    recorder.fail_at(2)

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "completed"
    assert execution.failed_steps_count == 1
    assert execution.completed_steps_count == 2
    assert execution.error_message == "Step 'Echo 2' failed: boom"
    assert recorder.calls == [1, 2, 3]
    assert execution.progress_percentage(3) == 67

    logs = await step_logs(db, execution)
    assert [log.status for log in logs] == ["completed", "failed", "completed"]


@pytest.mark.asyncio
async def test_resume_reruns_only_failed_steps(db, workflow_engine, dispatcher, make_workflow, recorder):
    workflow = await make_workflow()
    recorder.fail_at(2)

    execution = await workflow_engine.execute_sync(workflow)
    assert execution.status == "failed"

    recorder.failing.clear()
    await workflow_engine.resume(execution)

    assert execution.status == "running"
    assert execution.completed_at is None
    assert execution.error_message is None
    assert dispatcher.enqueued == [execution.id]

    logs = await step_logs(db, execution)
    assert [log.status for log in logs] == ["completed", "pending"]
    assert logs[1].error_message is None
    assert logs[1].started_at is None

    await workflow_engine.executor_for(execution).run()

    assert execution.status == "completed"
    assert recorder.calls == [1, 2, 2, 3]

    logs = await step_logs(db, execution)
    assert [log.status for log in logs] == ["completed"] * 3
    # One log per step; the failed row was reused
    assert len(logs) == 3
    assert logs[1].retry_count == 1


@pytest.mark.asyncio
async def test_cancel_during_step_stops_before_next(db, session_factory, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow(steps=[{}, {}, {}, {}])

    async def cancel_from_elsewhere(handler):
        async with session_factory() as other:
            execution = await other.get(WorkflowExecution, handler.execution.id)
            await WorkflowEngine(other).cancel(execution)

    recorder.on(2, cancel_from_elsewhere)

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "cancelled"
    assert recorder.calls == [1, 2]

    logs = await step_logs(db, execution)
    assert [log.position for log in logs] == [1, 2]

    await db.refresh(workflow)
    assert workflow.executions_count == 0


@pytest.mark.asyncio
async def test_step_failing_after_cancel_keeps_cancelled(db, session_factory, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow(steps=[{}, {}, {}])

    async def cancel_from_elsewhere(handler):
        async with session_factory() as other:
            execution = await other.get(WorkflowExecution, handler.execution.id)
            await WorkflowEngine(other).cancel(execution)

    recorder.on(2, cancel_from_elsewhere)
    recorder.fail_at(2)

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "cancelled"
    assert execution.failed_steps_count == 1
    assert recorder.calls == [1, 2]

    logs = await step_logs(db, execution)
    assert [log.status for log in logs] == ["completed", "failed"]


@pytest.mark.asyncio
async def test_unknown_step_type_fails_step(db, workflow_engine, make_workflow):
    workflow = await make_workflow(steps=[{}, {"step_type": "teleport", "name": "Teleport"}])

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "failed"
    assert execution.error_message == "Step 'Teleport' failed: Unknown step type: teleport"

    logs = await step_logs(db, execution)
    assert logs[1].status == "failed"
    assert logs[1].error_message == "Unknown step type: teleport"


@pytest.mark.asyncio
async def test_conditions_skip_step(db, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow(steps=[
        {},
        {"conditions": {"field": "trigger_data.kind", "operator": "equals", "value": "monthly"}},
        {},
    ])

    execution = await workflow_engine.execute_sync(workflow, trigger_data={"kind": "weekly"})

    assert execution.status == "completed"
    assert recorder.calls == [1, 3]
    assert execution.completed_steps_count == 2
    assert execution.progress_percentage(0) == 0

    logs = await step_logs(db, execution)
    assert [log.status for log in logs] == ["completed", "skipped", "completed"]


@pytest.mark.asyncio
async def test_disabled_steps_are_not_run(db, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow(steps=[{}, {"enabled": False}, {}])

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "completed"
    assert recorder.calls == [1, 3]
    assert len(await step_logs(db, execution)) == 2


@pytest.mark.asyncio
async def test_context_updates_flow_to_later_steps(db, workflow_engine, make_workflow):
    workflow = await make_workflow(steps=[
        {"config": {"set": {"bucket": {"id": 7}, "month": "May"}}},
        {
            "config": {"set": {"month": "June"}},
            "conditions": {"field": "bucket.id", "operator": "equals", "value": 7},
        },
        {},
    ])

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "completed"
    assert execution.context["bucket"] == {"id": 7}
    assert execution.context["month"] == "June"
    assert execution.context["workflow_name"] == "Monthly close"
    assert execution.current_step_position == 3


@pytest.mark.asyncio
async def test_failed_result_is_recorded_on_completed_step(db, workflow_engine, make_workflow):
    workflow = await make_workflow(steps=[{"config": {"soft_fail": True}}])

    execution = await workflow_engine.execute_sync(workflow)

    assert execution.status == "completed"
    logs = await step_logs(db, execution)
    assert logs[0].status == "completed"
    assert logs[0].output_data == {"success": False, "error": "nothing to do"}


@pytest.mark.asyncio
async def test_large_output_is_truncated(db, workflow_engine, make_workflow):
    workflow = await make_workflow(steps=[{"config": {"output": "x" * 50_000}}])

    execution = await workflow_engine.execute_sync(workflow)

    logs = await step_logs(db, execution)
    assert logs[0].output_data["output"] == "x" * 10_000


def test_sanitize_output_limits_lists_and_drops_non_dicts():
    assert sanitize_output(["not", "a", "dict"]) == {}
    assert sanitize_output(None) == {}
    assert sanitize_output({"rows": list(range(500))})["rows"] == list(range(100))


@pytest.mark.asyncio
async def test_persistence_failure_raises_orchestration_error(session_factory, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow(steps=[{}])
    workflow_id = workflow.id

    async def poison_context(handler):
        # Cannot be stored in a JSON column, so saving progress fails
        handler.add_to_context("unserializable", object())

    recorder.on(1, poison_context)

    with pytest.raises(OrchestrationError) as exc_info:
        await workflow_engine.execute_sync(workflow)
    assert exc_info.value.__cause__ is not None

    async with session_factory() as other:
        result = await other.execute(
            select(WorkflowExecution).where(WorkflowExecution.workflow_id == workflow_id)
        )
        execution = result.scalars().one()
        assert execution.status == "failed"
        assert execution.error_message
        assert execution.completed_at is not None
