import logging
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from automation.core.exceptions import NotExecutableError, NotResumableError, NotCancellableError
from automation.core.utils import utcnow, normalize_payload
from automation.models import Workflow, WorkflowStep, WorkflowExecution, WorkflowStepLog
from automation.services.dispatch import Dispatcher, CeleryDispatcher
from automation.services.executor import WorkflowExecutor
from automation.steps import StepRegistry, StepServices

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """
    Entry point for running workflows.

    ``execute`` creates a pending execution and hands it to the dispatcher;
    ``execute_sync`` runs it inline. ``resume`` and ``cancel`` act on an
    existing execution and raise when its status does not allow the action.
    """

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[Dispatcher] = None,
        registry: Optional[StepRegistry] = None,
        services: Optional[StepServices] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher or CeleryDispatcher()
        self.registry = registry
        self.services = services

    async def execute(
        self,
        workflow: Workflow,
        trigger_source: str = "manual",
        trigger_data: Optional[Dict[str, Any]] = None,
    ) -> WorkflowExecution:
        """
        Create an execution for ``workflow`` and queue it.

        Args:
            workflow: Workflow to run; must be active with at least one enabled step
            trigger_source: manual, schedule, event or "event:<name>"
            trigger_data: Payload describing what fired the workflow

        Returns:
            The pending execution
        """
        execution = await self._create_execution(workflow, trigger_source, trigger_data)
        await self.dispatcher.enqueue(execution.id)
        return execution

    async def execute_sync(
        self,
        workflow: Workflow,
        trigger_source: str = "manual",
        trigger_data: Optional[Dict[str, Any]] = None,
    ) -> WorkflowExecution:
        """Create an execution and run it to a terminal state in this task."""
        execution = await self._create_execution(workflow, trigger_source, trigger_data)
        await self.executor_for(execution).run()
        await self.db.refresh(execution)
        return execution

    async def resume(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Reset the failed step logs of a failed execution and queue it again."""
        if execution.status != "failed":
            raise NotResumableError(f"Execution {execution.id} is {execution.status}, only failed executions can be resumed")

        result = await self.db.execute(
            select(WorkflowStepLog).where(
                WorkflowStepLog.execution_id == execution.id,
                WorkflowStepLog.status == "failed",
            )
        )
        failed_logs = list(result.scalars().all())
        if not failed_logs:
            raise NotResumableError(f"Execution {execution.id} has no failed steps to resume")

        for log in failed_logs:
            log.status = "pending"
            log.error_message = None
            log.error_backtrace = None
            log.started_at = None
            log.completed_at = None
            log.duration_ms = None

        execution.status = "running"
        execution.completed_at = None
        execution.error_message = None
        await self.db.commit()

        logger.info(f"[Execution {execution.id}] Resuming with {len(failed_logs)} failed step(s) reset")
        await self.dispatcher.enqueue(execution.id)
        return execution

    async def cancel(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Mark a pending or running execution cancelled; the executor stops at its next step boundary."""
        if not execution.can_cancel:
            raise NotCancellableError(f"Execution {execution.id} is {execution.status} and cannot be cancelled")

        execution.status = "cancelled"
        execution.completed_at = utcnow()
        await self.db.commit()

        logger.info(f"[Execution {execution.id}] Cancelled")
        return execution

    def executor_for(self, execution: WorkflowExecution) -> WorkflowExecutor:
        return WorkflowExecutor(self.db, execution, registry=self.registry, services=self.services)

    async def _create_execution(
        self,
        workflow: Workflow,
        trigger_source: str,
        trigger_data: Optional[Dict[str, Any]],
    ) -> WorkflowExecution:
        await self._assert_executable(workflow)

        payload = normalize_payload(trigger_data or {})
        if not isinstance(payload, dict):
            payload = {"value": payload}

        execution = WorkflowExecution(
            workflow_id=workflow.id,
            tenant_id=workflow.tenant_id,
            status="pending",
            trigger_source=trigger_source,
            trigger_data=payload,
            context={
                "tenant_id": workflow.tenant_id,
                "workflow_id": workflow.id,
                "workflow_name": workflow.name,
                "started_at": utcnow().isoformat(),
                "trigger_data": payload,
            },
        )
        self.db.add(execution)
        await self.db.commit()

        logger.info(f"[Execution {execution.id}] Created for workflow {workflow.id} ({trigger_source})")
        return execution

    async def _assert_executable(self, workflow: Workflow) -> None:
        if not workflow.is_active:
            raise NotExecutableError(f"Workflow {workflow.id} is {workflow.status}; only active workflows can run")

        enabled_steps = await self.db.scalar(
            select(func.count(WorkflowStep.id)).where(
                WorkflowStep.workflow_id == workflow.id,
                WorkflowStep.enabled.is_(True),
            )
        )
        if not enabled_steps:
            raise NotExecutableError(f"Workflow {workflow.id} has no enabled steps")
