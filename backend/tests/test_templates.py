import pytest

from automation.core.exceptions import WorkflowDefinitionError
from automation.models import WorkflowTemplate
from automation.services.templates import TemplateApplier, create_template, list_templates


DEFINITION = {
    "name": "Monthly close",
    "description": "Run the close checklist",
    "trigger_type": "schedule",
    "trigger_config": {"cron": "0 9 1 * *", "timezone": "UTC"},
    "steps": [
        {"step_type": "echo", "name": "Collect"},
        {"step_type": "echo", "config": {"set": {"ready": True}}, "continue_on_failure": True},
    ],
}


@pytest.mark.asyncio
async def test_create_template_assigns_positions(db, registry):
    template = await create_template(db, "Close", DEFINITION, category="finance", registry=registry)

    assert [step["position"] for step in template.steps_definition] == [1, 2]
    assert template.trigger_type == "schedule"
    assert template.step_types == ["echo"]
    assert template.display_description == "2 step workflow template"


@pytest.mark.asyncio
async def test_create_template_rejects_bad_definition(db, registry):
    with pytest.raises(WorkflowDefinitionError):
        await create_template(db, "Broken", {"steps": [{"step_type": "teleport"}]}, registry=registry)

    with pytest.raises(WorkflowDefinitionError):
        await create_template(db, "Bad cron", {"trigger_type": "schedule", "trigger_config": {"cron": "soon"}})


def test_template_category_must_be_known():
    with pytest.raises(ValueError):
        WorkflowTemplate(name="Odd", category="gardening", definition={})


@pytest.mark.asyncio
async def test_list_templates_filters(db, registry):
    await create_template(db, "Share statements", {}, category="sharing", registry=registry)
    await create_template(db, "Audit pack", {}, category="compliance", featured=True, registry=registry)

    assert [t.name for t in await list_templates(db)] == ["Audit pack", "Share statements"]
    assert [t.name for t in await list_templates(db, category="sharing")] == ["Share statements"]
    assert [t.name for t in await list_templates(db, featured_only=True)] == ["Audit pack"]


@pytest.mark.asyncio
async def test_apply_creates_draft_workflow(db, registry):
    template = await create_template(db, "Close", DEFINITION, registry=registry)

    workflow = await TemplateApplier(
        db,
        template,
        "tenant-9",
        created_by="user-1",
        overrides={"name": None, "trigger_config": {"timezone": "Asia/Kolkata"}},
        registry=registry,
    ).apply()

    assert workflow.tenant_id == "tenant-9"
    assert workflow.status == "draft"
    assert workflow.name == "Monthly close"
    assert workflow.description == "Run the close checklist"
    assert workflow.trigger_config == {"cron": "0 9 1 * *", "timezone": "Asia/Kolkata"}
    assert workflow.workflow_metadata == {
        "created_from_template": True,
        "template_id": template.id,
        "template_name": "Close",
    }
    assert [(s.position, s.name) for s in workflow.steps] == [(1, "Collect"), (2, "Echo")]
    assert workflow.steps[1].continue_on_failure is True
    assert workflow.steps[1].config == {"set": {"ready": True}}


@pytest.mark.asyncio
async def test_apply_rejects_invalid_trigger_override(db, registry):
    template = await create_template(db, "Close", DEFINITION, registry=registry)

    with pytest.raises(WorkflowDefinitionError):
        await TemplateApplier(db, template, "tenant-9", overrides={"trigger_config": {"timezone": "Mars/Base"}}, registry=registry).apply()
