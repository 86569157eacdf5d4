import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional, List

import pytz
from croniter import croniter
from sqlalchemy import desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from automation.core.config import settings as app_settings
from automation.core.utils import utcnow, ensure_utc
from automation.models import Workflow, WorkflowExecution
from automation.services.dispatch import Dispatcher, CeleryDispatcher
from automation.services.engine import WorkflowEngine
from automation.steps import StepRegistry, StepServices

logger = logging.getLogger(__name__)


def previous_fire_time(cron_expression: str, timezone_name: str, now: datetime) -> datetime:
    """
    Most recent cron firing at or before ``now``, computed in the workflow's timezone.

    Raises:
        ValueError / KeyError: invalid cron expression or unknown timezone
    """
    tz = pytz.timezone(timezone_name)
    now_local = ensure_utc(now).astimezone(tz)
    # croniter's get_prev is strictly before its start; include an exact hit on ``now``
    cron = croniter(cron_expression, now_local + timedelta(seconds=1))
    return cron.get_prev(datetime)


class WorkflowScheduler:
    """
    Background scheduler that triggers cron-scheduled workflows.

    Every ``interval_seconds`` it scans active workflows with a ``schedule``
    trigger and fires those whose most recent cron time falls inside the last
    interval, unless the workflow already ran (or was scheduled) within the
    debounce window.
    """

    def __init__(
        self,
        session_factory,
        dispatcher: Optional[Dispatcher] = None,
        interval_seconds: Optional[int] = None,
        debounce_seconds: Optional[int] = None,
        registry: Optional[StepRegistry] = None,
        services: Optional[StepServices] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            session_factory: Callable returning an ``AsyncSession`` context manager
            dispatcher: Where created executions are queued (Celery by default)
            interval_seconds: Polling cadence
            debounce_seconds: Guard window against double firing
        """
        self.session_factory = session_factory
        self.dispatcher = dispatcher or CeleryDispatcher()
        self.interval_seconds = interval_seconds or app_settings.SCHEDULER_INTERVAL_SECONDS
        self.debounce_seconds = debounce_seconds or app_settings.SCHEDULER_DEBOUNCE_SECONDS
        self.registry = registry
        self.services = services
        self.is_running = False
        self.task: Optional[asyncio.Task] = None
        self.stop_event = asyncio.Event()

        logger.info(f"[Scheduler] Initialized with scan interval of {self.interval_seconds} seconds")

    async def start(self):
        """Start the scheduler background task."""
        if self.is_running:
            logger.warning("[Scheduler] Already running")
            return

        logger.info("[Scheduler] Starting workflow scheduler")
        self.is_running = True
        self.stop_event.clear()
        self.task = asyncio.create_task(self._run_scheduler_loop())

    async def stop(self):
        """Stop the scheduler background task."""
        if not self.is_running:
            logger.warning("[Scheduler] Not running")
            return

        logger.info("[Scheduler] Stopping workflow scheduler")
        self.is_running = False
        self.stop_event.set()

        if self.task:
            try:
                await asyncio.wait_for(self.task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("[Scheduler] Task did not terminate gracefully, cancelling")
                self.task.cancel()
                try:
                    await self.task
                except asyncio.CancelledError:
                    logger.info("[Scheduler] Task cancelled")

            self.task = None

    async def _run_scheduler_loop(self):
        while not self.stop_event.is_set():
            try:
                await self.poll()
            except Exception as e:
                logger.exception(f"[Scheduler] Error in scheduler loop: {str(e)}")

            # Wait for the next scan interval or until stop_event is set
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def poll(self, now: Optional[datetime] = None) -> List[WorkflowExecution]:
        """
        Run one scheduling pass.

        Each workflow is handled in its own session; an invalid schedule or a
        failing trigger is logged and the pass continues.

        Returns:
            Executions created during this pass
        """
        now = ensure_utc(now) if now else utcnow()
        created = []

        async with self.session_factory() as db:
            workflow_ids = await self._get_scheduled_workflow_ids(db)

        logger.debug(f"[Scheduler] Found {len(workflow_ids)} scheduled workflows")

        for workflow_id in workflow_ids:
            try:
                async with self.session_factory() as db:
                    execution = await self._process_workflow(db, workflow_id, now)
                if execution is not None:
                    created.append(execution)
            except Exception as e:
                logger.error(f"[Scheduler] Error processing workflow {workflow_id}: {str(e)}")

        return created

    async def _get_scheduled_workflow_ids(self, db: AsyncSession) -> List[str]:
        result = await db.execute(
            select(Workflow.id).where(
                Workflow.status == "active",
                Workflow.trigger_type == "schedule",
            )
        )
        return list(result.scalars().all())

    async def _process_workflow(self, db: AsyncSession, workflow_id: str, now: datetime) -> Optional[WorkflowExecution]:
        workflow = await db.get(Workflow, workflow_id)
        if workflow is None or not workflow.is_active:
            return None

        cron_expression = workflow.cron_expression
        timezone_name = workflow.schedule_timezone
        try:
            scheduled_at = previous_fire_time(cron_expression, timezone_name, now)
        except Exception as e:
            logger.error(
                f"[Scheduler] Invalid schedule '{cron_expression}' ({timezone_name}) for workflow {workflow.id}: {str(e)}"
            )
            return None

        if scheduled_at < now - timedelta(seconds=self.interval_seconds):
            return None

        if await self._recently_executed(db, workflow, now):
            logger.debug(f"[Scheduler] Workflow {workflow.id} already ran for {scheduled_at.isoformat()}")
            return None

        logger.info(f"[Scheduler] Executing scheduled workflow {workflow.id} for {scheduled_at.isoformat()}")

        engine = WorkflowEngine(db, dispatcher=self.dispatcher, registry=self.registry, services=self.services)
        execution = await engine.execute(
            workflow,
            trigger_source="schedule",
            trigger_data={
                "scheduled_at": scheduled_at.isoformat(),
                "cron": cron_expression,
                "timezone": timezone_name,
            },
        )

        logger.info(f"[Scheduler] Created execution {execution.id} for workflow {workflow.id}")
        return execution

    async def _recently_executed(self, db: AsyncSession, workflow: Workflow, now: datetime) -> bool:
        """Check the guard window against both the last completed run and the last scheduled execution."""
        guard_start = now - timedelta(seconds=self.debounce_seconds)

        last_executed_at = ensure_utc(workflow.last_executed_at)
        if last_executed_at is not None and last_executed_at >= guard_start:
            return True

        result = await db.execute(
            select(WorkflowExecution.created_at)
            .where(
                WorkflowExecution.workflow_id == workflow.id,
                WorkflowExecution.trigger_source == "schedule",
            )
            .order_by(desc(WorkflowExecution.created_at))
            .limit(1)
        )
        last_scheduled = ensure_utc(result.scalars().first())
        return last_scheduled is not None and last_scheduled >= guard_start
