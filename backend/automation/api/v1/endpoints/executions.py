from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from automation.api.deps import get_db, get_tenant_id, get_dispatcher
from automation.models import WorkflowExecution
from automation.schemas.execution import ExecutionDetailResponse
from automation.services.dispatch import Dispatcher
from automation.services.engine import WorkflowEngine
from automation.services.execution_service import get_workflow_execution


router = APIRouter()


async def get_tenant_execution(
    execution_id: str = Path(..., title="The ID of the execution"),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> WorkflowExecution:
    execution = await get_workflow_execution(db, tenant_id, execution_id)
    if not execution:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Execution with ID {execution_id} not found"
        )
    return execution


@router.get(
    "/{execution_id}",
    response_model=ExecutionDetailResponse,
    summary="Get an execution with its step logs"
)
async def get_execution(execution: WorkflowExecution = Depends(get_tenant_execution)):
    return execution


@router.post(
    "/{execution_id}/retry",
    response_model=ExecutionDetailResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Resume a failed execution"
)
async def retry_execution(
    execution: WorkflowExecution = Depends(get_tenant_execution),
    db: AsyncSession = Depends(get_db),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Reset the failed steps of a failed execution and queue it again.
    Completed steps are not re-run.
    """
    await WorkflowEngine(db, dispatcher=dispatcher).resume(execution)
    return await get_workflow_execution(db, execution.tenant_id, execution.id)


@router.post(
    "/{execution_id}/cancel",
    response_model=ExecutionDetailResponse,
    summary="Cancel a pending or running execution"
)
async def cancel_execution(
    execution: WorkflowExecution = Depends(get_tenant_execution),
    db: AsyncSession = Depends(get_db),
):
    await WorkflowEngine(db).cancel(execution)
    return await get_workflow_execution(db, execution.tenant_id, execution.id)
