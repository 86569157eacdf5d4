import logging
from typing import Any, Dict, List, Optional, Tuple

import pytz
from croniter import croniter
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from automation.core.exceptions import WorkflowDefinitionError, WorkflowStateError
from automation.core.utils import normalize_payload
from automation.models import Workflow, WorkflowStep, WorkflowExecution, WorkflowStepLog
from automation.models.workflow import TRIGGER_TYPES
from automation.steps import StepRegistry, default_registry

logger = logging.getLogger(__name__)

STEP_FIELDS = ("step_type", "name", "position", "config", "conditions", "enabled", "continue_on_failure")


def validate_trigger(trigger_type: str, trigger_config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Check a trigger definition and return its normalized config.

    Raises:
        WorkflowDefinitionError: unknown trigger type, bad cron or timezone,
            or an event trigger without an event type
    """
    if trigger_type not in TRIGGER_TYPES:
        raise WorkflowDefinitionError(f"Invalid trigger type: {trigger_type}")

    config = normalize_payload(trigger_config or {})

    if trigger_type == "schedule":
        cron = config.get("cron")
        if not cron or not croniter.is_valid(cron):
            raise WorkflowDefinitionError(f"Invalid cron expression: {cron!r}")
        timezone_name = config.get("timezone") or "UTC"
        if timezone_name not in pytz.all_timezones_set:
            raise WorkflowDefinitionError(f"Unknown timezone: {timezone_name}")
    elif trigger_type == "event" and not config.get("event_type"):
        raise WorkflowDefinitionError("Event triggers require an event_type")

    return config


def validate_steps(steps: List[Dict[str, Any]], registry: Optional[StepRegistry] = None) -> None:
    registry = registry or default_registry
    positions = set()
    for step in steps:
        step_type = step.get("step_type")
        if not registry.is_valid(step_type):
            raise WorkflowDefinitionError(f"Unknown step type: {step_type}")

        position = step.get("position")
        if position is None or int(position) < 1:
            raise WorkflowDefinitionError(f"Step position must be a positive integer, got {position!r}")
        if position in positions:
            raise WorkflowDefinitionError(f"Duplicate step position: {position}")
        positions.add(position)


def build_step(workflow_id: str, data: Dict[str, Any], registry: Optional[StepRegistry] = None) -> WorkflowStep:
    registry = registry or default_registry
    name = data.get("name")
    if not name:
        factory = registry.resolve(data["step_type"])
        get_display_name = getattr(factory, "get_display_name", None)
        name = get_display_name() if callable(get_display_name) else None

    return WorkflowStep(
        workflow_id=workflow_id,
        step_type=data["step_type"],
        name=name,
        position=data["position"],
        config=normalize_payload(data.get("config") or {}),
        conditions=normalize_payload(data.get("conditions") or {}),
        enabled=data.get("enabled", True) is not False,
        continue_on_failure=bool(data.get("continue_on_failure", False)),
    )


async def get_workflow(db: AsyncSession, tenant_id: str, workflow_id: str) -> Optional[Workflow]:
    """
    Retrieve a tenant's workflow by ID with its steps loaded.
    """
    result = await db.execute(
        select(Workflow)
        .options(selectinload(Workflow.steps))
        .where(Workflow.id == workflow_id, Workflow.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_workflows(
    db: AsyncSession,
    tenant_id: str,
    skip: int = 0,
    limit: int = 25,
    status: Optional[str] = None,
    trigger_type: Optional[str] = None,
) -> Tuple[int, List[Workflow]]:
    filters = [Workflow.tenant_id == tenant_id]
    if status:
        filters.append(Workflow.status == status)
    if trigger_type:
        filters.append(Workflow.trigger_type == trigger_type)

    total = await db.scalar(select(func.count(Workflow.id)).where(*filters))

    result = await db.execute(
        select(Workflow)
        .options(selectinload(Workflow.steps))
        .where(*filters)
        .order_by(Workflow.updated_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return total or 0, list(result.scalars().all())


async def create_workflow(
    db: AsyncSession,
    tenant_id: str,
    data: Dict[str, Any],
    created_by: Optional[str] = None,
    registry: Optional[StepRegistry] = None,
) -> Workflow:
    """
    Create a draft workflow together with its steps.

    Args:
        db: Database session
        tenant_id: Owning tenant
        data: name, description, trigger_type, trigger_config, metadata, steps
        created_by: Optional user reference

    Returns:
        The created workflow with steps loaded
    """
    trigger_type = data.get("trigger_type") or "manual"
    trigger_config = validate_trigger(trigger_type, data.get("trigger_config"))
    steps = data.get("steps") or []
    validate_steps(steps, registry)

    workflow = Workflow(
        tenant_id=tenant_id,
        name=data["name"],
        description=data.get("description"),
        status="draft",
        trigger_type=trigger_type,
        trigger_config=trigger_config,
        workflow_metadata=normalize_payload(data.get("metadata") or {}),
        created_by=created_by,
    )
    db.add(workflow)
    await db.flush()

    for step_data in steps:
        db.add(build_step(workflow.id, step_data, registry))

    await db.commit()
    logger.info(f"Created workflow {workflow.id} ({workflow.name}) with {len(steps)} steps")
    return await get_workflow(db, tenant_id, workflow.id)


async def update_workflow(db: AsyncSession, workflow: Workflow, data: Dict[str, Any]) -> Workflow:
    if "trigger_type" in data or "trigger_config" in data:
        trigger_type = data.get("trigger_type") or workflow.trigger_type
        trigger_config = data.get("trigger_config", workflow.trigger_config)
        data["trigger_config"] = validate_trigger(trigger_type, trigger_config)
        data["trigger_type"] = trigger_type

    if "metadata" in data:
        data["workflow_metadata"] = normalize_payload(data.pop("metadata") or {})

    for key, value in data.items():
        setattr(workflow, key, value)

    await db.commit()
    return await get_workflow(db, workflow.tenant_id, workflow.id)


async def delete_workflow(db: AsyncSession, workflow: Workflow) -> None:
    execution_ids = select(WorkflowExecution.id).where(WorkflowExecution.workflow_id == workflow.id)
    await db.execute(delete(WorkflowStepLog).where(WorkflowStepLog.execution_id.in_(execution_ids)))
    await db.execute(delete(WorkflowExecution).where(WorkflowExecution.workflow_id == workflow.id))
    await db.execute(delete(WorkflowStep).where(WorkflowStep.workflow_id == workflow.id))
    await db.execute(delete(Workflow).where(Workflow.id == workflow.id))
    await db.commit()

    logger.info(f"Deleted workflow {workflow.id}")


async def activate_workflow(db: AsyncSession, workflow: Workflow) -> Workflow:
    if not workflow.can_activate:
        raise WorkflowStateError(f"Workflow {workflow.id} is {workflow.status} and cannot be activated")
    return await _set_status(db, workflow, "active")


async def pause_workflow(db: AsyncSession, workflow: Workflow) -> Workflow:
    if workflow.status != "active":
        raise WorkflowStateError(f"Workflow {workflow.id} is {workflow.status} and cannot be paused")
    return await _set_status(db, workflow, "paused")


async def archive_workflow(db: AsyncSession, workflow: Workflow) -> Workflow:
    if workflow.status == "archived":
        raise WorkflowStateError(f"Workflow {workflow.id} is already archived")
    return await _set_status(db, workflow, "archived")


async def _set_status(db: AsyncSession, workflow: Workflow, status: str) -> Workflow:
    previous = workflow.status
    workflow.status = status
    await db.commit()

    logger.info(f"Workflow {workflow.id} status changed: {previous} -> {status}")
    return await get_workflow(db, workflow.tenant_id, workflow.id)


async def _position_taken(db: AsyncSession, workflow_id: str, position: int, exclude_step_id: Optional[str] = None) -> bool:
    query = select(WorkflowStep.id).where(
        WorkflowStep.workflow_id == workflow_id,
        WorkflowStep.position == position,
    )
    if exclude_step_id:
        query = query.where(WorkflowStep.id != exclude_step_id)
    result = await db.execute(query)
    return result.first() is not None


async def add_step(
    db: AsyncSession,
    workflow: Workflow,
    data: Dict[str, Any],
    registry: Optional[StepRegistry] = None,
) -> WorkflowStep:
    """Append a step; without a position it goes after the current last step."""
    data = dict(data)
    if data.get("position") is None:
        max_position = await db.scalar(
            select(func.max(WorkflowStep.position)).where(WorkflowStep.workflow_id == workflow.id)
        )
        data["position"] = (max_position or 0) + 1
    elif await _position_taken(db, workflow.id, data["position"]):
        raise WorkflowDefinitionError(f"Duplicate step position: {data['position']}")

    validate_steps([data], registry)

    step = build_step(workflow.id, data, registry)
    db.add(step)
    await db.commit()
    return step


async def get_step(db: AsyncSession, workflow: Workflow, step_id: str) -> Optional[WorkflowStep]:
    result = await db.execute(
        select(WorkflowStep).where(WorkflowStep.id == step_id, WorkflowStep.workflow_id == workflow.id)
    )
    return result.scalars().first()


async def update_step(db: AsyncSession, step: WorkflowStep, data: Dict[str, Any]) -> WorkflowStep:
    position = data.get("position")
    if position is not None and await _position_taken(db, step.workflow_id, position, exclude_step_id=step.id):
        raise WorkflowDefinitionError(f"Duplicate step position: {position}")

    for key in ("config", "conditions"):
        if key in data:
            data[key] = normalize_payload(data[key] or {})

    for key, value in data.items():
        if key in STEP_FIELDS and key != "step_type":
            setattr(step, key, value)

    await db.commit()
    return step


async def delete_step(db: AsyncSession, step: WorkflowStep) -> None:
    await db.execute(delete(WorkflowStepLog).where(WorkflowStepLog.step_id == step.id))
    await db.execute(delete(WorkflowStep).where(WorkflowStep.id == step.id))
    await db.commit()


async def reorder_steps(db: AsyncSession, workflow: Workflow, step_ids: List[str]) -> Workflow:
    """
    Assign positions 1..n following ``step_ids``.

    ``step_ids`` must name every step of the workflow exactly once.
    """
    result = await db.execute(select(WorkflowStep).where(WorkflowStep.workflow_id == workflow.id))
    steps = {step.id: step for step in result.scalars().all()}

    if len(step_ids) != len(set(step_ids)) or set(step_ids) != set(steps):
        raise WorkflowDefinitionError("Reorder must list every step of the workflow exactly once")

    # Move out of the way first so the unique (workflow_id, position) index holds at each flush
    offset = max((step.position for step in steps.values()), default=0) + len(step_ids)
    for index, step_id in enumerate(step_ids):
        steps[step_id].position = offset + index + 1
    await db.flush()

    for index, step_id in enumerate(step_ids):
        steps[step_id].position = index + 1
    await db.commit()

    return await get_workflow(db, workflow.tenant_id, workflow.id)
