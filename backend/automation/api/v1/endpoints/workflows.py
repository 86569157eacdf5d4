from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Path, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from automation.api.deps import get_db, get_tenant_id, get_user_id, get_dispatcher, get_registry, get_tenant_workflow
from automation.core.utils import utcnow
from automation.models import Workflow
from automation.models.workflow import TRIGGER_TYPES, WORKFLOW_STATUSES
from automation.models.workflow_execution import EXECUTION_STATUSES
from automation.schemas.execution import ExecutionResponse, ExecutionListResponse
from automation.schemas.workflow import (
    WorkflowCreate,
    WorkflowUpdate,
    WorkflowResponse,
    WorkflowListResponse,
    StepCreate,
    StepUpdate,
    StepReorder,
    StepResponse,
    StepTypeResponse,
    TriggerRequest,
    WorkflowTemplateResponse,
    WorkflowTemplateDetailResponse,
    WorkflowFromTemplate,
)
from automation.services import workflow as workflow_service
from automation.services.dispatch import Dispatcher
from automation.services.engine import WorkflowEngine
from automation.services.execution_service import list_workflow_executions
from automation.services import templates as template_service
from automation.steps import StepRegistry

router = APIRouter()


@router.get(
    "/meta/step-types",
    response_model=List[StepTypeResponse],
    summary="List available step types"
)
async def list_step_types(registry: StepRegistry = Depends(get_registry)):
    """
    Metadata for every registered step type, for building workflows in a UI.
    """
    return registry.available_steps()


@router.get(
    "/meta/templates",
    response_model=List[WorkflowTemplateResponse],
    summary="List workflow templates"
)
async def list_templates(
    db: AsyncSession = Depends(get_db),
    category: Optional[str] = None,
    featured_only: bool = False,
):
    return await template_service.list_templates(db, category=category, featured_only=featured_only)


@router.get(
    "/meta/templates/{template_id}",
    response_model=WorkflowTemplateDetailResponse,
    summary="Get a workflow template with its full definition"
)
async def get_template(
    template_id: str = Path(..., title="The ID of the template"),
    db: AsyncSession = Depends(get_db),
):
    template = await template_service.get_template(db, template_id)
    if not template:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template with ID {template_id} not found"
        )
    return template


@router.post(
    "/from_template/{template_id}",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workflow from a template"
)
async def create_workflow_from_template(
    overrides: Optional[WorkflowFromTemplate] = None,
    template_id: str = Path(..., title="The ID of the template"),
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    registry: StepRegistry = Depends(get_registry),
):
    """
    Create a draft workflow, with its steps, from a template.
    """
    template = await template_service.get_template(db, template_id)
    if not template:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template with ID {template_id} not found"
        )

    applier = template_service.TemplateApplier(
        db,
        template,
        tenant_id,
        created_by=user_id,
        overrides=overrides.model_dump() if overrides else None,
        registry=registry,
    )
    return await applier.apply()


@router.post(
    "/",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new workflow"
)
async def create_workflow(
    workflow: WorkflowCreate,
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    registry: StepRegistry = Depends(get_registry),
):
    """
    Create a new draft workflow, optionally with its steps.
    """
    return await workflow_service.create_workflow(
        db,
        tenant_id,
        workflow.model_dump(),
        created_by=user_id,
        registry=registry,
    )


@router.get(
    "/",
    response_model=WorkflowListResponse,
    summary="List workflows"
)
async def list_workflows(
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    skip: int = Query(0, ge=0),
    limit: int = Query(25, ge=1, le=100),
    workflow_status: Optional[str] = Query(None, alias="status"),
    trigger_type: Optional[str] = None,
):
    """
    List the tenant's workflows with optional filtering.
    """
    if workflow_status and workflow_status not in WORKFLOW_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {workflow_status}")
    if trigger_type and trigger_type not in TRIGGER_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid trigger type: {trigger_type}")

    total, workflows = await workflow_service.list_workflows(
        db, tenant_id, skip=skip, limit=limit, status=workflow_status, trigger_type=trigger_type
    )

    return {
        "total": total,
        "items": workflows,
        "skip": skip,
        "limit": limit
    }


@router.get(
    "/{workflow_id}",
    response_model=WorkflowResponse,
    summary="Get a workflow by ID"
)
async def get_workflow(workflow: Workflow = Depends(get_tenant_workflow)):
    return workflow


@router.patch(
    "/{workflow_id}",
    response_model=WorkflowResponse,
    summary="Update a workflow"
)
async def update_workflow(
    workflow_update: WorkflowUpdate,
    workflow: Workflow = Depends(get_tenant_workflow),
    db: AsyncSession = Depends(get_db),
):
    """
    Update a workflow's name, description, trigger or metadata.
    """
    return await workflow_service.update_workflow(db, workflow, workflow_update.model_dump(exclude_unset=True))


@router.delete(
    "/{workflow_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a workflow"
)
async def delete_workflow(
    workflow: Workflow = Depends(get_tenant_workflow),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a workflow with its steps and execution history.
    """
    await workflow_service.delete_workflow(db, workflow)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{workflow_id}/activate", response_model=WorkflowResponse, summary="Activate a workflow")
async def activate_workflow(workflow: Workflow = Depends(get_tenant_workflow), db: AsyncSession = Depends(get_db)):
    return await workflow_service.activate_workflow(db, workflow)


@router.post("/{workflow_id}/pause", response_model=WorkflowResponse, summary="Pause a workflow")
async def pause_workflow(workflow: Workflow = Depends(get_tenant_workflow), db: AsyncSession = Depends(get_db)):
    return await workflow_service.pause_workflow(db, workflow)


@router.post("/{workflow_id}/archive", response_model=WorkflowResponse, summary="Archive a workflow")
async def archive_workflow(workflow: Workflow = Depends(get_tenant_workflow), db: AsyncSession = Depends(get_db)):
    return await workflow_service.archive_workflow(db, workflow)


@router.post(
    "/{workflow_id}/trigger",
    response_model=ExecutionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Trigger a workflow execution manually"
)
async def trigger_workflow(
    trigger: Optional[TriggerRequest] = None,
    workflow: Workflow = Depends(get_tenant_workflow),
    db: AsyncSession = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Create an execution and queue it; the run happens on a worker.
    """
    trigger_data = dict(trigger.trigger_data) if trigger else {}
    trigger_data["triggered_at"] = utcnow().isoformat()
    if user_id:
        trigger_data["triggered_by"] = user_id

    engine = WorkflowEngine(db, dispatcher=dispatcher)
    return await engine.execute(workflow, trigger_source="manual", trigger_data=trigger_data)


@router.post(
    "/{workflow_id}/steps",
    response_model=StepResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a step to a workflow"
)
async def add_step(
    step: StepCreate,
    workflow: Workflow = Depends(get_tenant_workflow),
    db: AsyncSession = Depends(get_db),
    registry: StepRegistry = Depends(get_registry),
):
    return await workflow_service.add_step(db, workflow, step.model_dump(), registry=registry)


@router.patch(
    "/{workflow_id}/steps/{step_id}",
    response_model=StepResponse,
    summary="Update a workflow step"
)
async def update_step(
    step_update: StepUpdate,
    step_id: str = Path(..., title="The ID of the step"),
    workflow: Workflow = Depends(get_tenant_workflow),
    db: AsyncSession = Depends(get_db),
):
    step = await workflow_service.get_step(db, workflow, step_id)
    if not step:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Step with ID {step_id} not found"
        )
    return await workflow_service.update_step(db, step, step_update.model_dump(exclude_unset=True))


@router.delete(
    "/{workflow_id}/steps/{step_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a workflow step"
)
async def delete_step(
    step_id: str = Path(..., title="The ID of the step"),
    workflow: Workflow = Depends(get_tenant_workflow),
    db: AsyncSession = Depends(get_db),
):
    step = await workflow_service.get_step(db, workflow, step_id)
    if not step:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Step with ID {step_id} not found"
        )
    await workflow_service.delete_step(db, step)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{workflow_id}/steps/reorder",
    response_model=WorkflowResponse,
    summary="Reorder workflow steps"
)
async def reorder_steps(
    reorder: StepReorder,
    workflow: Workflow = Depends(get_tenant_workflow),
    db: AsyncSession = Depends(get_db),
):
    return await workflow_service.reorder_steps(db, workflow, reorder.step_ids)


@router.get(
    "/{workflow_id}/executions",
    response_model=ExecutionListResponse,
    summary="Get workflow execution history"
)
async def list_executions(
    workflow: Workflow = Depends(get_tenant_workflow),
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    execution_status: Optional[str] = Query(None, alias="status"),
):
    if execution_status and execution_status not in EXECUTION_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {execution_status}")

    total, executions = await list_workflow_executions(
        db, workflow.id, skip=skip, limit=limit, status_filter=execution_status
    )
    return {
        "total": total,
        "items": executions,
        "skip": skip,
        "limit": limit
    }
