from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, DateTime, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship, validates
from uuid import uuid4

from automation.core.utils import utcnow
from automation.db.base import Base


WORKFLOW_STATUSES = ("draft", "active", "paused", "archived")
TRIGGER_TYPES = ("manual", "schedule", "event")


class Workflow(Base):
    """Workflow definition: a trigger plus an ordered list of steps."""

    __tablename__ = "workflows"
    __table_args__ = (
        Index("ix_workflows_tenant_status", "tenant_id", "status"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="draft")
    trigger_type = Column(String, nullable=False, default="manual", index=True)
    trigger_config = Column(JSON, nullable=False, default=dict)
    workflow_metadata = Column("metadata", JSON, nullable=False, default=dict)
    executions_count = Column(Integer, nullable=False, default=0)
    last_executed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    steps = relationship(
        "WorkflowStep",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowStep.position",
    )
    executions = relationship("WorkflowExecution", back_populates="workflow", cascade="all, delete-orphan")

    @validates("status")
    def validate_status(self, key, value):
        if value not in WORKFLOW_STATUSES:
            raise ValueError(f"Invalid workflow status: {value!r}")
        return value

    @validates("trigger_type")
    def validate_trigger_type(self, key, value):
        if value not in TRIGGER_TYPES:
            raise ValueError(f"Invalid trigger type: {value!r}")
        return value

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def can_activate(self) -> bool:
        return self.status in ("draft", "paused")

    @property
    def cron_expression(self):
        if self.trigger_type != "schedule":
            return None
        return (self.trigger_config or {}).get("cron")

    @property
    def schedule_timezone(self) -> str:
        return (self.trigger_config or {}).get("timezone") or "UTC"

    @property
    def event_type(self):
        if self.trigger_type != "event":
            return None
        return (self.trigger_config or {}).get("event_type")

    def __repr__(self):
        return f"<Workflow {self.name} ({self.status})>"


class WorkflowStep(Base):
    """One ordered, configured unit of work inside a workflow."""

    __tablename__ = "workflow_steps"
    __table_args__ = (
        UniqueConstraint("workflow_id", "position", name="uq_workflow_steps_workflow_position"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    workflow_id = Column(String, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True)
    step_type = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    position = Column(Integer, nullable=False)
    config = Column(JSON, nullable=False, default=dict)
    conditions = Column(JSON, nullable=False, default=dict)
    enabled = Column(Boolean, nullable=False, default=True)
    continue_on_failure = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    workflow = relationship("Workflow", back_populates="steps")

    @validates("position")
    def validate_position(self, key, value):
        if value is None or int(value) < 1:
            raise ValueError(f"Step position must be a positive integer, got {value!r}")
        return int(value)

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return self.step_type.replace("_", " ").capitalize()

    @property
    def is_conditional(self) -> bool:
        return bool(self.conditions)

    def __repr__(self):
        return f"<WorkflowStep {self.position}:{self.step_type}>"
