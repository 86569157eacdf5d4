import enum
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.future import select

from automation.core.exceptions import NotExecutableError, NotResumableError, NotCancellableError
from automation.models import WorkflowStepLog


class Period(enum.Enum):
    MONTHLY = "monthly"


@pytest.mark.asyncio
async def test_execute_creates_pending_execution_and_dispatches(workflow_engine, dispatcher, make_workflow, recorder):
    workflow = await make_workflow()

    execution = await workflow_engine.execute(workflow, trigger_data={"source": "api"})

    assert execution.status == "pending"
    assert execution.trigger_source == "manual"
    assert execution.tenant_id == "tenant-1"
    assert dispatcher.enqueued == [execution.id]
    # Nothing runs until a worker picks it up
    assert recorder.calls == []

    context = execution.context
    assert set(context) == {"tenant_id", "workflow_id", "workflow_name", "started_at", "trigger_data"}
    assert context["workflow_id"] == workflow.id
    assert context["trigger_data"] == {"source": "api"}


@pytest.mark.asyncio
async def test_trigger_data_is_normalized(workflow_engine, make_workflow):
    workflow = await make_workflow()
    ref = uuid.uuid4()

    execution = await workflow_engine.execute(
        workflow,
        trigger_source="event:document_uploaded",
        trigger_data={
            1: "one",
            "at": datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc),
            "ref": ref,
            "period": Period.MONTHLY,
            "tags": ("a", "b"),
        },
    )

    assert execution.trigger_data == {
        "1": "one",
        "at": "2026-05-01T09:30:00+00:00",
        "ref": str(ref),
        "period": "monthly",
        "tags": ["a", "b"],
    }
    assert execution.trigger_description == "Event: Document uploaded"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["draft", "paused", "archived"])
async def test_inactive_workflow_is_not_executable(workflow_engine, dispatcher, make_workflow, status):
    workflow = await make_workflow(status=status)

    with pytest.raises(NotExecutableError):
        await workflow_engine.execute(workflow)
    assert dispatcher.enqueued == []


@pytest.mark.asyncio
async def test_workflow_without_enabled_steps_is_not_executable(workflow_engine, make_workflow):
    workflow = await make_workflow(steps=[{"enabled": False}])

    with pytest.raises(NotExecutableError):
        await workflow_engine.execute_sync(workflow)


@pytest.mark.asyncio
async def test_resume_requires_failed_execution(workflow_engine, make_workflow):
    workflow = await make_workflow()
    execution = await workflow_engine.execute_sync(workflow)
    assert execution.status == "completed"

    with pytest.raises(NotResumableError):
        await workflow_engine.resume(execution)


@pytest.mark.asyncio
async def test_resume_requires_failed_step_logs(db, workflow_engine, make_workflow):
    workflow = await make_workflow()
    execution = await workflow_engine.execute(workflow)
    execution.status = "failed"
    await db.commit()

    with pytest.raises(NotResumableError):
        await workflow_engine.resume(execution)


@pytest.mark.asyncio
async def test_cancel_pending_execution_prevents_run(db, workflow_engine, make_workflow, recorder):
    workflow = await make_workflow()
    execution = await workflow_engine.execute(workflow)

    await workflow_engine.cancel(execution)
    assert execution.status == "cancelled"
    assert execution.completed_at is not None

    await workflow_engine.executor_for(execution).run()

    assert execution.status == "cancelled"
    assert recorder.calls == []
    result = await db.execute(select(WorkflowStepLog).where(WorkflowStepLog.execution_id == execution.id))
    assert result.first() is None


@pytest.mark.asyncio
async def test_cancel_finished_execution_raises(workflow_engine, make_workflow):
    workflow = await make_workflow()
    execution = await workflow_engine.execute_sync(workflow)

    with pytest.raises(NotCancellableError):
        await workflow_engine.cancel(execution)
    assert execution.status == "completed"
