"""Hand-off of created executions to whatever runs them."""

import abc
import logging
from typing import List

logger = logging.getLogger(__name__)


class Dispatcher(metaclass=abc.ABCMeta):
    """Queues an execution id for a worker; must not wait for the run."""

    @abc.abstractmethod
    async def enqueue(self, execution_id: str) -> None:
        raise NotImplementedError


class CeleryDispatcher(Dispatcher):
    """Sends ``run_workflow_execution_task`` to the Celery broker."""

    async def enqueue(self, execution_id: str) -> None:
        # Imported here; the task module imports the engine
        from automation.tasks.executions import run_workflow_execution_task

        result = run_workflow_execution_task.delay(execution_id)
        logger.info(f"[Execution {execution_id}] Queued as task {result.id}")


class InMemoryDispatcher(Dispatcher):
    """Records enqueued ids in order. Used by tests and local runs without a broker."""

    def __init__(self) -> None:
        self.enqueued: List[str] = []

    async def enqueue(self, execution_id: str) -> None:
        self.enqueued.append(execution_id)
