# automation/api/v1/router.py

from fastapi import APIRouter

from automation.api.v1.endpoints import workflows, executions, notifications
from automation.api.v1 import healthcheck

# Create main API router
api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(workflows.router, prefix="/workflows", tags=["Workflows"])
api_router.include_router(executions.router, prefix="/executions", tags=["Executions"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(healthcheck.router, prefix="")
