import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from automation.core.config import settings
from automation.core.exceptions import ExecutionNotFoundError, OrchestrationError
from automation.db.session import SessionLocal
from automation.models import WorkflowExecution
from automation.services.executor import WorkflowExecutor
from automation.services.scheduler import WorkflowScheduler
from automation.steps import StepServices
from automation.tasks.worker import celery_app, AsyncTask, get_step_services


logger = logging.getLogger(__name__)


async def run_execution(
    execution_id: str,
    allow_failed: bool = False,
    session_factory=None,
    services: Optional[StepServices] = None,
) -> Dict[str, Any]:
    """
    Load an execution and drive it with the executor.

    Finished executions are left alone, except a ``failed`` one when
    ``allow_failed`` is set (a retry after an orchestration failure).

    Raises:
        ExecutionNotFoundError: the execution no longer exists
        OrchestrationError: the run failed outside of a step
    """
    session_factory = session_factory or SessionLocal

    async with session_factory() as db:
        execution = await db.get(WorkflowExecution, execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)

        runnable = execution.in_progress or (allow_failed and execution.status == "failed")
        if not runnable:
            logger.info(f"[Execution {execution_id}] Is {execution.status}, nothing to run")
            return {"status": execution.status, "execution_id": execution_id}

        await WorkflowExecutor(db, execution, services=services).run()
        return {"status": execution.status, "execution_id": execution_id}


@celery_app.task(
    bind=True,
    name="automation.tasks.executions.run_workflow_execution_task",
    autoretry_for=(OrchestrationError, SQLAlchemyError),
    retry_backoff=True,
    retry_backoff_max=settings.TASK_RETRY_BACKOFF_MAX,
    retry_jitter=True,
    max_retries=settings.TASK_MAX_RETRIES,
)
def run_workflow_execution_task(self, execution_id: str):
    """
    Celery task to run a workflow execution.
    This is a synchronous wrapper around the async execution function.
    """
    logger.info(f"Starting execution task for execution ID: {execution_id} (attempt {self.request.retries + 1})")

    task = AsyncTask()
    try:
        return task.run_async(
            run_execution,
            execution_id,
            allow_failed=self.request.retries > 0,
            services=get_step_services(),
        )
    except ExecutionNotFoundError as e:
        # Deleted since it was queued; retrying cannot help
        logger.warning(f"{str(e)}, discarding task")
        return {"status": "discarded", "execution_id": execution_id}


@celery_app.task(bind=True, name="automation.tasks.executions.process_scheduled_workflows_task")
def process_scheduled_workflows_task(self):
    """
    Celery task to process scheduled workflows that are due to run.
    This is scheduled to run every minute by the Celery beat scheduler.
    """
    logger.info("Running scheduled workflow processor")

    task = AsyncTask()
    scheduler = WorkflowScheduler(SessionLocal, services=get_step_services())

    try:
        executions = task.run_async(scheduler.poll)
        execution_ids = [execution.id for execution in executions]
        return {
            "status": "success",
            "executions_started": len(execution_ids),
            "execution_ids": execution_ids
        }
    except Exception as e:
        logger.error(f"Error processing scheduled workflows: {str(e)}")
        raise
