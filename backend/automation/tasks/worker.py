from celery import Celery
from celery.schedules import crontab
from celery.utils.imports import symbol_by_name
import logging
import asyncio

from automation.core.config import settings
from automation.db.session import SessionLocal
from automation.services.notifications import NotificationService
from automation.steps import StepServices, ReferenceDataCache


logger = logging.getLogger(__name__)


def create_celery() -> Celery:
    """Create and configure Celery instance."""

    celery_app = Celery("automation")

    # Configure Celery
    celery_app.conf.broker_url = settings.CELERY_BROKER_URL
    celery_app.conf.result_backend = settings.REDIS_URI
    celery_app.conf.task_always_eager = settings.CELERY_TASK_ALWAYS_EAGER

    # Task serialization format
    celery_app.conf.task_serializer = "json"
    celery_app.conf.result_serializer = "json"
    celery_app.conf.accept_content = ["json"]

    # Enable UTC timezone
    celery_app.conf.enable_utc = True

    # Task execution settings
    celery_app.conf.worker_prefetch_multiplier = 1
    celery_app.conf.task_acks_late = True

    # Configure logging
    celery_app.conf.worker_log_color = False
    celery_app.conf.worker_redirect_stdouts = False

    # Import tasks modules
    celery_app.autodiscover_tasks(["automation.tasks"], related_name="executions")

    # Configure scheduled tasks (beat)
    celery_app.conf.beat_schedule = {
        "process-scheduled-workflows": {
            "task": "automation.tasks.executions.process_scheduled_workflows_task",
            "schedule": crontab(minute="*"),  # Run every minute
            "options": {"expires": 55}  # Task expires if not started within 55 seconds
        },
    }

    return celery_app


class AsyncTask:
    """Helpers for running async engine code from Celery's sync tasks."""

    @staticmethod
    def run_async(async_func, *args, **kwargs):
        """Run an async function from a sync context."""
        # The worker keeps one loop so pooled connections stay bound to it
        try:
            loop = asyncio.get_event_loop()
        except RuntimeError:
            loop = None

        if loop is None or loop.is_closed():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)

        return loop.run_until_complete(async_func(*args, **kwargs))


def load_document_provider(path):
    """Build the document provider named by ``path`` (``"package.module:factory"``), if any."""
    if not path:
        return None
    return symbol_by_name(path)()


_step_services = None


def get_step_services() -> StepServices:
    """Step collaborators shared by every task in this worker process."""
    global _step_services
    if _step_services is None:
        _step_services = StepServices(
            notifier=NotificationService(SessionLocal),
            reference_cache=ReferenceDataCache(ttl_seconds=settings.REFERENCE_CACHE_TTL_SECONDS),
            documents=load_document_provider(settings.DOCUMENT_PROVIDER),
        )
        if _step_services.documents is None:
            logger.warning("No DOCUMENT_PROVIDER configured; check_documents steps will report it")
    return _step_services


# Create Celery app instance
celery_app = create_celery()
