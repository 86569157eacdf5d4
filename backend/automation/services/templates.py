import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from automation.core.utils import normalize_payload
from automation.models import Workflow, WorkflowTemplate
from automation.services import workflow as workflow_service
from automation.steps import StepRegistry

logger = logging.getLogger(__name__)


def _positioned_steps(steps: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Copy step definitions, giving steps without a position their 1-based index."""
    positioned = []
    for index, step in enumerate(steps, start=1):
        step = dict(step)
        if step.get("position") is None:
            step["position"] = index
        positioned.append(step)
    return positioned


async def list_templates(
    db: AsyncSession,
    category: Optional[str] = None,
    featured_only: bool = False,
) -> List[WorkflowTemplate]:
    query = select(WorkflowTemplate)
    if category:
        query = query.where(WorkflowTemplate.category == category)
    if featured_only:
        query = query.where(WorkflowTemplate.featured.is_(True))

    result = await db.execute(query.order_by(WorkflowTemplate.name))
    return list(result.scalars().all())


async def get_template(db: AsyncSession, template_id: str) -> Optional[WorkflowTemplate]:
    return await db.get(WorkflowTemplate, template_id)


async def create_template(
    db: AsyncSession,
    name: str,
    definition: Dict[str, Any],
    description: Optional[str] = None,
    category: Optional[str] = None,
    featured: bool = False,
    icon: Optional[str] = None,
    registry: Optional[StepRegistry] = None,
) -> WorkflowTemplate:
    """
    Store a template after checking its definition the way a workflow would be checked.

    Raises:
        WorkflowDefinitionError: bad trigger or steps in ``definition``
    """
    definition = normalize_payload(dict(definition or {}))
    trigger_type = definition.get("trigger_type") or "manual"
    definition["trigger_config"] = workflow_service.validate_trigger(trigger_type, definition.get("trigger_config"))
    definition["steps"] = _positioned_steps(definition.get("steps") or [])
    workflow_service.validate_steps(definition["steps"], registry)

    template = WorkflowTemplate(
        name=name,
        description=description,
        category=category,
        definition=definition,
        featured=featured,
        icon=icon,
    )
    db.add(template)
    await db.commit()

    logger.info(f"Created workflow template {template.id} ({name})")
    return template


class TemplateApplier:
    """
    Creates a tenant's draft workflow from a template.

    ``overrides`` may carry ``name`` and ``trigger_config``; the trigger
    config override is merged over the template's. The new workflow's
    metadata records which template it came from.
    """

    def __init__(
        self,
        db: AsyncSession,
        template: WorkflowTemplate,
        tenant_id: str,
        created_by: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        registry: Optional[StepRegistry] = None,
    ):
        self.db = db
        self.template = template
        self.tenant_id = tenant_id
        self.created_by = created_by
        self.overrides = {key: value for key, value in (overrides or {}).items() if value is not None}
        self.registry = registry

    async def apply(self) -> Workflow:
        template = self.template
        definition = template.definition or {}

        data = {
            "name": self.overrides.get("name") or definition.get("name") or template.name,
            "description": definition.get("description") or template.description,
            "trigger_type": template.trigger_type,
            "trigger_config": {**template.trigger_config, **(self.overrides.get("trigger_config") or {})},
            "metadata": {
                "created_from_template": True,
                "template_id": template.id,
                "template_name": template.name,
            },
            "steps": _positioned_steps(template.steps_definition),
        }

        workflow = await workflow_service.create_workflow(
            self.db,
            self.tenant_id,
            data,
            created_by=self.created_by,
            registry=self.registry,
        )
        logger.info(f"Applied template {template.id} as workflow {workflow.id} for tenant {self.tenant_id}")
        return workflow
