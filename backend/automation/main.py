# automation/main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager

from automation.api.v1.router import api_router
from automation.api.error_handlers import (
    validation_exception_handler,
    workflow_exception_handler,
    general_exception_handler,
)
from automation.core.config import settings
from automation.core.exceptions import WorkflowError
from automation.core.logging_config import configure_logging
from automation.db.session import engine, SessionLocal
from automation.db.base import Base
from automation.services.scheduler import WorkflowScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = WorkflowScheduler(SessionLocal)
        await scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()
    await engine.dispose()


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description=settings.PROJECT_DESCRIPTION,
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(WorkflowError, workflow_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/health", include_in_schema=False)
    async def health_check():
        return JSONResponse(content={"status": "ok"}, status_code=200)

    return app

app = create_application()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("automation.main:app", host="0.0.0.0", port=8000, reload=True)
