from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from automation.api.deps import get_db, get_tenant_id
from automation.schemas.execution import NotificationResponse
from automation.services.notifications import list_notifications


router = APIRouter()


@router.get(
    "/",
    response_model=List[NotificationResponse],
    summary="List notifications raised by workflow steps"
)
async def get_notifications(
    db: AsyncSession = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    unread_only: bool = False,
):
    return await list_notifications(db, tenant_id, skip=skip, limit=limit, unread_only=unread_only)
