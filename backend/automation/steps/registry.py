# automation/steps/registry.py

import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

StepFactory = Callable[..., Any]


class StepRegistry:
    """
    Closed table mapping a step type key to the factory that builds its handler.

    Populated once at process start (importing ``automation.steps`` registers
    the built-in step types). Factories are called as
    ``factory(execution=..., step=..., context=..., services=...)``.
    """

    def __init__(self):
        self._factories: Dict[str, StepFactory] = {}

    def register(self, step_type: str, factory: Optional[StepFactory] = None):
        """
        Register a factory under ``step_type``.

        Can be called directly or used as a class decorator::

            @registry.register("delay")
            class DelayStep(BaseStep): ...

        Args:
            step_type: Stable string key stored on ``WorkflowStep.step_type``
            factory: Callable producing a handler with ``execute`` and
                ``context_updates``
        """
        def _register(target: StepFactory) -> StepFactory:
            if step_type in self._factories:
                raise ValueError(f"Step type {step_type} is already registered")
            self._factories[step_type] = target
            logger.debug(f"Registered step type: {step_type}")
            return target

        if factory is None:
            return _register
        return _register(factory)

    def alias(self, alias: str, step_type: str) -> None:
        """Register ``alias`` as a second key for an existing step type."""
        factory = self.resolve(step_type)
        if factory is None:
            raise ValueError(f"Cannot alias unknown step type {step_type}")
        self.register(alias, factory)

    def resolve(self, step_type: Optional[str]) -> Optional[StepFactory]:
        if step_type is None:
            return None
        return self._factories.get(str(step_type))

    def __contains__(self, step_type: str) -> bool:
        return self.is_valid(step_type)

    def is_valid(self, step_type: Optional[str]) -> bool:
        return step_type is not None and str(step_type) in self._factories

    def step_types(self) -> List[str]:
        """List all registered step type keys."""
        return list(self._factories.keys())

    def available_steps(self) -> List[dict]:
        """Metadata for every registered step type, for building workflows in a UI."""
        steps = []
        for step_type, factory in self._factories.items():
            describe = getattr(factory, "describe", None)
            info = describe() if callable(describe) else {}
            steps.append({"type": step_type, **info})
        return steps

    def steps_by_category(self) -> Dict[str, List[dict]]:
        grouped: Dict[str, List[dict]] = {}
        for info in self.available_steps():
            grouped.setdefault(info.get("category", "general"), []).append(info)
        return grouped


# Process-wide registry populated by automation.steps
default_registry = StepRegistry()
