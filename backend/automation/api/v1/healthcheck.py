# automation/api/v1/healthcheck.py

from fastapi import APIRouter
from automation.core.config import settings
from automation.steps import default_registry

router = APIRouter()

@router.get("/health", tags=["Health"])
async def healthcheck():
    """
    Basic health check endpoint to verify app configuration.
    """
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "version": settings.VERSION,
        "db_server": settings.POSTGRES_SERVER,
        "scheduler_enabled": settings.SCHEDULER_ENABLED,
        "step_types": len(default_registry.step_types()),
    }
