from typing import Optional

from fastapi import Depends, Header, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from automation.db.session import get_db
from automation.models import Workflow
from automation.services.dispatch import Dispatcher, CeleryDispatcher
from automation.services.workflow import get_workflow
from automation.steps import StepRegistry, default_registry


async def get_tenant_id(x_tenant_id: Optional[str] = Header(None)) -> str:
    """
    Dependency resolving the tenant from the ``X-Tenant-ID`` header.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    return x_tenant_id


async def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id


def get_dispatcher() -> Dispatcher:
    return CeleryDispatcher()


def get_registry() -> StepRegistry:
    return default_registry


async def get_tenant_workflow(
    workflow_id: str = Path(..., title="The ID of the workflow"),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> Workflow:
    """
    Dependency loading a workflow owned by the requesting tenant, or 404.
    """
    workflow = await get_workflow(db, tenant_id, workflow_id)
    if not workflow:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Workflow with ID {workflow_id} not found"
        )
    return workflow


__all__ = ["get_db", "get_tenant_id", "get_user_id", "get_dispatcher", "get_registry", "get_tenant_workflow"]
