# automation/steps/__init__.py
from automation.steps.registry import StepRegistry, default_registry
from automation.steps.base import BaseStep, StepServices
from automation.steps.cache import ReferenceDataCache

# Importing the handlers registers them on default_registry
from automation.steps import condition, delay, notification, documents  # noqa: F401


__all__ = ["StepRegistry", "default_registry", "BaseStep", "StepServices", "ReferenceDataCache"]
