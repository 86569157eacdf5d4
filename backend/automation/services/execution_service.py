from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from automation.models import WorkflowExecution


async def get_workflow_execution(db: AsyncSession, tenant_id: str, execution_id: str) -> Optional[WorkflowExecution]:
    """
    Fetch a tenant's workflow execution by ID, with its step logs.
    """
    result = await db.execute(
        select(WorkflowExecution)
        .options(selectinload(WorkflowExecution.step_logs))
        .where(WorkflowExecution.id == execution_id, WorkflowExecution.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_workflow_executions(
    db: AsyncSession,
    workflow_id: str,
    skip: int = 0,
    limit: int = 20,
    status_filter: Optional[str] = None,
) -> Tuple[int, List[WorkflowExecution]]:
    """
    List executions of a workflow, newest first.
    """
    filters = [WorkflowExecution.workflow_id == workflow_id]
    if status_filter:
        filters.append(WorkflowExecution.status == status_filter)

    total = await db.scalar(select(func.count(WorkflowExecution.id)).where(*filters))
    result = await db.execute(
        select(WorkflowExecution)
        .where(*filters)
        .order_by(WorkflowExecution.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return total or 0, list(result.scalars().all())
