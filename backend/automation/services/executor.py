import copy
import logging
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from automation.core.exceptions import OrchestrationError, UnknownStepTypeError
from automation.core.utils import utcnow, elapsed_ms, normalize_payload
from automation.models import Workflow, WorkflowStep, WorkflowExecution, WorkflowStepLog
from automation.services.conditions import ConditionEvaluator
from automation.steps import StepRegistry, StepServices, default_registry

# Set up logger for the workflow executor
logger = logging.getLogger(__name__)

MAX_OUTPUT_STRING_LENGTH = 10_000
MAX_OUTPUT_LIST_LENGTH = 100
MAX_BACKTRACE_FRAMES = 10


@dataclass
class StepOutcome:
    success: bool
    skipped: bool = False
    context: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


def sanitize_output(result: Any) -> Dict[str, Any]:
    """
    Bound the size of a handler result before it is stored on the step log.

    Strings are truncated to 10,000 characters and lists to their first 100
    elements. Results that are not dicts are stored as an empty dict.
    """
    if not isinstance(result, dict):
        return {}

    sanitized = {}
    for key, value in result.items():
        if isinstance(value, str):
            sanitized[key] = value[:MAX_OUTPUT_STRING_LENGTH]
        elif isinstance(value, (list, tuple)):
            sanitized[key] = list(value)[:MAX_OUTPUT_LIST_LENGTH]
        else:
            sanitized[key] = value
    return normalize_payload(sanitized)


def format_backtrace(error: BaseException) -> str:
    """Innermost frames of the error's traceback, capped to bound storage."""
    return "".join(
        traceback.format_exception(type(error), error, error.__traceback__, limit=-MAX_BACKTRACE_FRAMES)
    )


class WorkflowExecutor:
    """
    Drives one execution through its workflow's enabled steps.

    Steps run strictly in ascending position order. Handler failures are
    recorded on the step log and stop the run unless the step allows
    ``continue_on_failure``. Steps whose log is already ``completed`` are
    skipped, which makes re-running a failed or interrupted execution
    idempotent. Cancellation is checked once before each step.
    """

    def __init__(
        self,
        db: AsyncSession,
        execution: WorkflowExecution,
        registry: Optional[StepRegistry] = None,
        services: Optional[StepServices] = None,
    ):
        self.db = db
        self.execution = execution
        self.registry = registry or default_registry
        self.services = services or StepServices()
        self.total_steps = 0

    async def run(self) -> WorkflowExecution:
        execution = self.execution
        execution_id = execution.id
        if execution.status == "cancelled":
            logger.info(f"[Execution {execution_id}] Cancelled before start, nothing to run")
            return execution

        try:
            await self._start_execution()

            workflow = await self.db.get(Workflow, execution.workflow_id)
            steps = await self._load_enabled_steps()
            self.total_steps = len(steps)
            context = copy.deepcopy(execution.context or {})

            for step in steps:
                if await self._cancellation_requested():
                    logger.info(f"[Execution {execution.id}] Cancelled, stopping before step {step.position}")
                    return execution

                if await self._already_completed(step):
                    logger.debug(f"[Execution {execution.id}] Step {step.position} already completed, skipping")
                    continue

                outcome = await self._execute_step(step, context)

                if outcome.success:
                    if not outcome.skipped:
                        context = outcome.context
                    continue

                await self._handle_step_failure(step, outcome.error)
                if not step.continue_on_failure:
                    logger.warning(f"[Execution {execution.id}] Stopped at step {step.position}: {execution.status}")
                    return execution

            if await self._cancellation_requested():
                logger.info(f"[Execution {execution.id}] Cancelled after final step")
                return execution

            await self._complete_execution(workflow)
            logger.info(f"[Execution {execution.id}] Completed successfully in {execution.duration_human}")
            return execution

        except Exception as e:
            logger.exception(f"[Execution {execution_id}] Unexpected error: {str(e)}")
            await self._fail_execution(execution_id, e)
            raise OrchestrationError(f"Execution {execution_id} failed: {str(e)}") from e

    async def _start_execution(self) -> None:
        execution = self.execution
        execution.status = "running"
        if execution.started_at is None:
            execution.started_at = utcnow()
        execution.completed_at = None
        await self.db.commit()

        logger.info(f"[Execution {execution.id}] Running workflow {execution.workflow_id}")

    async def _load_enabled_steps(self) -> List[WorkflowStep]:
        result = await self.db.execute(
            select(WorkflowStep)
            .where(
                WorkflowStep.workflow_id == self.execution.workflow_id,
                WorkflowStep.enabled.is_(True),
            )
            .order_by(WorkflowStep.position)
        )
        return list(result.scalars().all())

    async def _cancellation_requested(self) -> bool:
        """Re-read the persisted status; cancellation is written by another session."""
        await self.db.refresh(self.execution, attribute_names=["status"])
        return self.execution.status == "cancelled"

    async def _already_completed(self, step: WorkflowStep) -> bool:
        result = await self.db.execute(
            select(WorkflowStepLog.id).where(
                WorkflowStepLog.execution_id == self.execution.id,
                WorkflowStepLog.step_id == step.id,
                WorkflowStepLog.status == "completed",
            )
        )
        return result.first() is not None

    async def _find_or_create_step_log(self, step: WorkflowStep, context: Dict[str, Any]) -> WorkflowStepLog:
        input_data = {
            "config": copy.deepcopy(step.config or {}),
            "context_keys": list(context.keys()),
        }

        result = await self.db.execute(
            select(WorkflowStepLog)
            .where(
                WorkflowStepLog.execution_id == self.execution.id,
                WorkflowStepLog.step_id == step.id,
                WorkflowStepLog.status != "completed",
            )
            .order_by(WorkflowStepLog.created_at)
        )
        log = result.scalars().first()

        if log is None:
            log = WorkflowStepLog(
                execution_id=self.execution.id,
                step_id=step.id,
                position=step.position,
                status="pending",
                input_data=input_data,
                retry_count=0,
            )
            self.db.add(log)
        else:
            # Reuse the row left by a failed or interrupted attempt
            log.status = "pending"
            log.input_data = input_data
            log.error_message = None
            log.error_backtrace = None
            log.completed_at = None
            log.duration_ms = None

        await self.db.flush()
        return log

    async def _execute_step(self, step: WorkflowStep, context: Dict[str, Any]) -> StepOutcome:
        execution = self.execution
        log = await self._find_or_create_step_log(step, context)

        log.status = "running"
        log.started_at = utcnow()
        await self.db.commit()

        logger.info(f"[Execution {execution.id}] Executing step {step.position}: {step.display_name}")

        try:
            if step.is_conditional and not ConditionEvaluator(step.conditions, context).evaluate():
                log.status = "skipped"
                log.completed_at = utcnow()
                log.duration_ms = elapsed_ms(log.started_at)
                await self.db.commit()
                logger.info(f"[Execution {execution.id}] Skipping step {step.position}: conditions not met")
                return StepOutcome(success=True, skipped=True)

            factory = self.registry.resolve(step.step_type)
            if factory is None:
                raise UnknownStepTypeError(step.step_type)

            handler = factory(
                execution=execution,
                step=step,
                context=copy.deepcopy(context),
                services=self.services,
            )
            result = await handler.execute()
            context_updates = normalize_payload(handler.context_updates() or {})

        except Exception as e:
            error_msg = str(e) or type(e).__name__
            log.status = "failed"
            log.error_message = error_msg
            log.error_backtrace = format_backtrace(e)
            log.completed_at = utcnow()
            log.duration_ms = elapsed_ms(log.started_at)
            log.retry_count = (log.retry_count or 0) + 1
            await self.db.commit()

            logger.error(f"[Execution {execution.id}] Error executing step {step.display_name}: {error_msg}")
            return StepOutcome(success=False, error=error_msg)

        context = {**context, **context_updates}

        # Log completion and execution progress share one commit
        log.status = "completed"
        log.output_data = sanitize_output(result)
        log.completed_at = utcnow()
        log.duration_ms = elapsed_ms(log.started_at)
        execution.context = context
        execution.current_step_position = step.position
        execution.completed_steps_count = (execution.completed_steps_count or 0) + 1
        await self.db.commit()

        progress = execution.progress_percentage(self.total_steps)
        logger.info(f"[Execution {execution.id}] Step completed: {step.display_name} ({progress}%)")
        return StepOutcome(success=True, context=context)

    async def _handle_step_failure(self, step: WorkflowStep, error: Optional[str]) -> None:
        execution = self.execution
        # A cancel written while the step ran stays terminal
        cancelled = await self._cancellation_requested()

        execution.failed_steps_count = (execution.failed_steps_count or 0) + 1
        execution.error_message = f"Step '{step.display_name}' failed: {error}"
        execution.current_step_position = step.position

        if not step.continue_on_failure and not cancelled:
            execution.status = "failed"
            execution.completed_at = utcnow()
            execution.duration_ms = elapsed_ms(execution.started_at, execution.completed_at)

        await self.db.commit()

    async def _complete_execution(self, workflow: Optional[Workflow]) -> None:
        execution = self.execution
        now = utcnow()
        execution.status = "completed"
        execution.completed_at = now
        execution.duration_ms = elapsed_ms(execution.started_at, now)

        # Statistics only; concurrent runs may interleave these increments
        await self.db.execute(
            update(Workflow)
            .where(Workflow.id == execution.workflow_id)
            .values(
                executions_count=Workflow.executions_count + 1,
                last_executed_at=now,
            )
        )
        await self.db.commit()

        if workflow is not None:
            await self.db.refresh(workflow, attribute_names=["executions_count", "last_executed_at"])

    async def _fail_execution(self, execution_id: str, error: Exception) -> None:
        # No attribute reads before the rollback; the session may be in a failed flush
        try:
            await self.db.rollback()
            await self.db.refresh(self.execution)
            if self.execution.status == "cancelled":
                return
            now = utcnow()
            self.execution.status = "failed"
            self.execution.error_message = str(error) or type(error).__name__
            self.execution.completed_at = now
            self.execution.duration_ms = elapsed_ms(self.execution.started_at, now)
            await self.db.commit()
        except Exception as update_error:
            logger.error(f"[Execution {execution_id}] Error updating failed execution status: {str(update_error)}")
