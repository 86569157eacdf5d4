from types import SimpleNamespace

import pytest

from automation.core.exceptions import StopWorkflowError
from automation.steps import BaseStep, StepRegistry, StepServices, ReferenceDataCache, default_registry
from automation.steps.condition import ConditionStep
from automation.steps.delay import DelayStep, MAX_DELAY_SECONDS
from automation.steps.documents import CheckDocumentsStep
from automation.steps.notification import SendNotificationStep


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, tenant_id, title, message, notification_type="info", source=None, source_id=None):
        self.sent.append({
            "tenant_id": tenant_id,
            "title": title,
            "message": message,
            "notification_type": notification_type,
            "source": source,
            "source_id": source_id,
        })
        return f"notification-{len(self.sent)}"


class StaticDocuments:
    def __init__(self, counts):
        self.counts = counts
        self.queries = []

    async def count_documents(self, tenant_id, document_types, bucket_id):
        self.queries.append((tenant_id, tuple(document_types), bucket_id))
        return sum(self.counts.get(doc_type, 0) for doc_type in document_types)


def build_handler(handler_class, config=None, context=None, services=None):
    execution = SimpleNamespace(id="exec-1", tenant_id="tenant-1", workflow_id="wf-1")
    step = SimpleNamespace(id="step-1", position=1, config=config or {})
    return handler_class(execution=execution, step=step, context=context or {}, services=services)


def test_default_registry_has_builtin_steps():
    assert {"condition", "delay", "send_notification", "notify", "check_documents"} <= set(default_registry.step_types())
    assert default_registry.resolve("notify") is SendNotificationStep
    assert default_registry.resolve("teleport") is None
    assert "delay" in default_registry


def test_available_steps_describe_handlers():
    steps = {info["type"]: info for info in default_registry.available_steps()}

    assert steps["check_documents"]["name"] == "Check Documents"
    assert steps["check_documents"]["category"] == "document"
    assert "required_documents" in steps["check_documents"]["config_schema"]["properties"]
    assert "notification" in default_registry.steps_by_category()


def test_registry_rejects_duplicates():
    registry = StepRegistry()

    @registry.register("noop")
    class NoopStep(BaseStep):
        async def execute(self):
            return {}

    with pytest.raises(ValueError):
        registry.register("noop", NoopStep)
    with pytest.raises(ValueError):
        registry.alias("other", "missing")

    registry.alias("nothing", "noop")
    assert registry.resolve("nothing") is NoopStep
    assert NoopStep.get_display_name() == "Noop"


@pytest.mark.asyncio
async def test_condition_step_stores_result():
    handler = build_handler(
        ConditionStep,
        config={"condition_name": "has_bucket", "rules": [{"field": "bucket.id", "operator": "is_not_empty"}]},
        context={"bucket": {"id": 3}},
    )

    result = await handler.execute()

    assert result["result"] is True
    assert handler.context_updates() == {"has_bucket": True, "last_condition_result": True}


@pytest.mark.asyncio
async def test_condition_step_can_stop_workflow():
    handler = build_handler(
        ConditionStep,
        config={"rules": [{"field": "bucket", "operator": "is_not_empty"}], "stop_if_false": True},
    )

    with pytest.raises(StopWorkflowError):
        await handler.execute()


@pytest.mark.asyncio
async def test_delay_step_caps_duration(monkeypatch):
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    monkeypatch.setattr("automation.steps.delay.asyncio.sleep", fake_sleep)

    handler = build_handler(DelayStep, config={"duration": 10, "unit": "minutes"})
    result = await handler.execute()

    assert slept == [MAX_DELAY_SECONDS]
    assert result["delayed_seconds"] == MAX_DELAY_SECONDS
    assert handler.context_updates()["last_delay"]["duration"] == MAX_DELAY_SECONDS


@pytest.mark.asyncio
async def test_send_notification_interpolates_context():
    notifier = RecordingNotifier()
    handler = build_handler(
        SendNotificationStep,
        config={"title": "Close for {{date_range.month_name}}", "message": "Bucket {{bucket.id}}{{missing}} ready"},
        context={"date_range": {"month_name": "May 2026"}, "bucket": {"id": 12}},
        services=StepServices(notifier=notifier),
    )

    result = await handler.execute()

    assert result["notification_sent"] is True
    assert notifier.sent[0]["title"] == "Close for May 2026"
    assert notifier.sent[0]["message"] == "Bucket 12 ready"
    assert notifier.sent[0]["source_id"] == "wf-1"
    assert handler.context_updates()["last_notification"]["id"] == "notification-1"


@pytest.mark.asyncio
async def test_send_notification_without_notifier():
    handler = build_handler(SendNotificationStep, config={"title": "Hi", "message": "There"})

    result = await handler.execute()

    assert result["notification_sent"] is False
    assert handler.context_updates()["last_notification"]["title"] == "Hi"


@pytest.mark.asyncio
async def test_check_documents_requires_bucket():
    handler = build_handler(CheckDocumentsStep, services=StepServices(documents=StaticDocuments({})))

    result = await handler.execute()

    assert result == {"success": False, "error": "No bucket found in context"}


@pytest.mark.asyncio
async def test_check_documents_all_present():
    documents = StaticDocuments({"statement": 1, "invoice": 4})
    handler = build_handler(
        CheckDocumentsStep,
        context={"bucket": {"id": 9}},
        services=StepServices(documents=documents),
    )

    result = await handler.execute()

    assert result["success"] is True
    assert result["missing_count"] == 0
    assert ("tenant-1", ("bank_statement", "statement"), 9) in documents.queries
    assert handler.context_updates()["document_check"]["missing"] == []


@pytest.mark.asyncio
async def test_check_documents_pauses_and_notifies_on_missing():
    notifier = RecordingNotifier()
    handler = build_handler(
        CheckDocumentsStep,
        config={"required_documents": ["bank_statement", "firc"], "missing_doc_action": "pause"},
        context={"bucket": {"id": 9}, "date_range": {"month_name": "April 2026"}},
        services=StepServices(notifier=notifier, documents=StaticDocuments({"statement": 2})),
    )

    result = await handler.execute()

    assert result["success"] is False
    assert result["missing_types"] == ["firc"]
    updates = handler.context_updates()
    assert updates["workflow_paused"] is True
    assert updates["pause_reason"] == "Missing documents: firc"
    assert notifier.sent[0]["notification_type"] == "warning"
    assert "April 2026" in notifier.sent[0]["message"]


@pytest.mark.asyncio
async def test_check_documents_missing_with_notify_action_succeeds():
    handler = build_handler(
        CheckDocumentsStep,
        config={"required_documents": ["gst_returns"], "notify_on_missing": False},
        context={"bucket": {"id": 1}},
        services=StepServices(documents=StaticDocuments({})),
    )

    result = await handler.execute()

    assert result["success"] is True
    assert result["missing_types"] == ["gst_returns"]
    assert "workflow_paused" not in handler.context_updates()


def test_reference_cache_refreshes_when_stale():
    now = [100.0]
    loads = []

    def loader():
        loads.append(now[0])
        return {"document_types": {"invoices": ["invoice"]}, "version": len(loads)}

    cache = ReferenceDataCache(loader=loader, ttl_seconds=60, clock=lambda: now[0])
    assert cache.stale()

    assert cache.get("version") == 1
    now[0] += 30
    assert cache.get("version") == 1
    assert not cache.stale()

    now[0] += 31
    assert cache.stale()
    assert cache.get("version") == 2

    cache.refresh()
    assert cache.get("version") == 3
    assert cache.get("missing", "fallback") == "fallback"
