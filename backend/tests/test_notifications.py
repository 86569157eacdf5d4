import pytest

from automation.services.notifications import NotificationService, list_notifications


@pytest.mark.asyncio
async def test_notify_persists_notification(db, session_factory):
    service = NotificationService(session_factory)

    notification_id = await service.notify(
        "tenant-1",
        "Missing Documents",
        "Bank statement is missing",
        notification_type="warning",
        source="workflow",
        source_id="wf-1",
    )

    assert notification_id is not None
    notifications = await list_notifications(db, "tenant-1")
    assert [n.id for n in notifications] == [notification_id]
    assert notifications[0].notification_type == "warning"
    assert notifications[0].read is False
    assert await list_notifications(db, "tenant-2") == []


@pytest.mark.asyncio
async def test_notify_failures_are_swallowed(session_factory):
    service = NotificationService(session_factory)

    # Invalid type is rejected by the model; the caller just gets None
    assert await service.notify("tenant-1", "Oops", "bad type", notification_type="shouting") is None


@pytest.mark.asyncio
async def test_notify_survives_broken_storage():
    def broken_factory():
        raise ConnectionError("database unavailable")

    assert await NotificationService(broken_factory).notify("tenant-1", "Title", "Body") is None


@pytest.mark.asyncio
async def test_notification_step_in_workflow(db, session_factory, dispatcher, make_workflow):
    from automation.services.engine import WorkflowEngine
    from automation.steps import StepServices

    workflow = await make_workflow(steps=[{
        "step_type": "notify",
        "name": "Tell owner",
        "config": {"title": "Run for {{workflow_name}}", "message": "Started", "notification_type": "success"},
    }])
    services = StepServices(notifier=NotificationService(session_factory))

    execution = await WorkflowEngine(db, dispatcher=dispatcher, services=services).execute_sync(workflow)

    assert execution.status == "completed"
    notifications = await list_notifications(db, "tenant-1")
    assert len(notifications) == 1
    assert notifications[0].title == "Run for Monthly close"
    assert notifications[0].source_id == workflow.id
    assert execution.context["last_notification"]["id"] == notifications[0].id
