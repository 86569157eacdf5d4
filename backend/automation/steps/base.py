import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from automation.steps.cache import ReferenceDataCache

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


class Notifier(Protocol):
    async def notify(
        self,
        tenant_id: str,
        title: str,
        message: str,
        notification_type: str = "info",
        source: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> Optional[str]:
        ...


class DocumentProvider(Protocol):
    """Document storage lookups used by document steps."""

    async def count_documents(self, tenant_id: str, document_types: List[str], bucket_id: Any) -> int:
        ...


@dataclass
class StepServices:
    """Collaborators handed to every step handler."""
    notifier: Optional[Notifier] = None
    reference_cache: ReferenceDataCache = field(default_factory=ReferenceDataCache)
    documents: Optional[DocumentProvider] = None


class BaseStep:
    """
    Base class for step handlers.

    Subclasses implement ``execute`` and return a dict describing the result.
    Raising marks the step failed; returning ``failure_result(...)`` records an
    expected, non-exceptional outcome on a completed step. Values passed to
    ``add_to_context`` are merged into the execution context only when the
    step succeeds.
    """

    display_name: Optional[str] = None
    description: str = ""
    category: str = "general"
    icon: str = "play"
    config_schema: Dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    def __init__(self, execution, step, context: Optional[Dict[str, Any]] = None, services: Optional[StepServices] = None):
        self.execution = execution
        self.step = step
        self.context = dict(context or {})
        self.services = services or StepServices()
        self._context_updates: Dict[str, Any] = {}

    async def execute(self) -> Dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} must implement execute()")

    def context_updates(self) -> Dict[str, Any]:
        return dict(self._context_updates)

    @classmethod
    def get_display_name(cls) -> str:
        if cls.display_name:
            return cls.display_name
        name = re.sub(r"Step$", "", cls.__name__)
        return re.sub(r"(?<!^)(?=[A-Z])", " ", name).capitalize()

    @classmethod
    def describe(cls) -> Dict[str, Any]:
        return {
            "name": cls.get_display_name(),
            "description": cls.description,
            "category": cls.category,
            "icon": cls.icon,
            "config_schema": cls.config_schema,
        }

    @property
    def config(self) -> Dict[str, Any]:
        return self.step.config or {}

    @property
    def tenant_id(self) -> str:
        return self.execution.tenant_id

    @property
    def workflow_id(self) -> str:
        return self.execution.workflow_id

    @property
    def trigger_data(self) -> Dict[str, Any]:
        return self.context.get("trigger_data") or {}

    def add_to_context(self, key: str, value: Any) -> None:
        self._context_updates[str(key)] = value
        self.context[str(key)] = value

    def from_context(self, key: str, default: Any = None) -> Any:
        value = self.context.get(str(key))
        return default if value is None else value

    def interpolate(self, template: Any) -> Any:
        """Replace ``{{path.to.value}}`` placeholders with context values."""
        if not isinstance(template, str):
            return template

        def _replace(match):
            value = self._resolve_key_path(match.group(1).strip())
            return "" if value is None else str(value)

        return TEMPLATE_PATTERN.sub(_replace, template)

    def success_result(self, message: str, **extras) -> Dict[str, Any]:
        return {"success": True, "message": message, **extras}

    def failure_result(self, message: str, **extras) -> Dict[str, Any]:
        return {"success": False, "error": message, **extras}

    def log_info(self, message: str) -> None:
        logger.info(f"[Workflow {self.workflow_id}] [Step {self.step.id}] {message}")

    def log_error(self, message: str) -> None:
        logger.error(f"[Workflow {self.workflow_id}] [Step {self.step.id}] {message}")

    def _resolve_key_path(self, key_path: str) -> Any:
        current: Any = self.context
        for part in key_path.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
        return current
