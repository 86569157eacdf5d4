from typing import Any, Dict, List

from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON
from sqlalchemy.orm import validates
from uuid import uuid4

from automation.core.utils import utcnow
from automation.db.base import Base


TEMPLATE_CATEGORIES = ("finance", "compliance", "automation", "reporting", "sharing")


class WorkflowTemplate(Base):
    """
    Reusable workflow definition shared by all tenants.

    ``definition`` holds the same shape as a workflow creation request:
    ``name``, ``description``, ``trigger_type``, ``trigger_config`` and a
    ``steps`` list.
    """

    __tablename__ = "workflow_templates"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True, index=True)
    definition = Column(JSON, nullable=False, default=dict)
    featured = Column(Boolean, nullable=False, default=False, index=True)
    icon = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @validates("category")
    def validate_category(self, key, value):
        if value and value not in TEMPLATE_CATEGORIES:
            raise ValueError(f"Invalid template category: {value!r}")
        return value or None

    @property
    def trigger_type(self) -> str:
        return (self.definition or {}).get("trigger_type") or "manual"

    @property
    def trigger_config(self) -> Dict[str, Any]:
        return (self.definition or {}).get("trigger_config") or {}

    @property
    def steps_definition(self) -> List[Dict[str, Any]]:
        return (self.definition or {}).get("steps") or []

    @property
    def steps_count(self) -> int:
        return len(self.steps_definition)

    @property
    def step_types(self) -> List[str]:
        return list(dict.fromkeys(step.get("step_type") for step in self.steps_definition))

    @property
    def steps_preview(self) -> List[Dict[str, Any]]:
        return [{"step_type": step.get("step_type"), "name": step.get("name")} for step in self.steps_definition]

    @property
    def display_description(self) -> str:
        return self.description or f"{self.steps_count} step workflow template"

    def __repr__(self):
        return f"<WorkflowTemplate {self.name}>"
