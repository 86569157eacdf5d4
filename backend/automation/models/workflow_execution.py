from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, JSON, Index
from sqlalchemy.orm import relationship, validates
from uuid import uuid4

from automation.core.utils import utcnow
from automation.db.base import Base


EXECUTION_STATUSES = ("pending", "running", "completed", "failed", "cancelled")
FINISHED_STATUSES = ("completed", "failed", "cancelled")
IN_PROGRESS_STATUSES = ("pending", "running")
STEP_LOG_STATUSES = ("pending", "running", "completed", "failed", "skipped")
TRIGGER_SOURCES = ("manual", "schedule", "event")


class WorkflowExecution(Base):
    """One run of a workflow, started by a trigger."""

    __tablename__ = "workflow_executions"
    __table_args__ = (
        Index("ix_workflow_executions_workflow_status", "workflow_id", "status"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    workflow_id = Column(String, ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, index=True, default="pending")
    trigger_source = Column(String, nullable=False, default="manual")
    trigger_data = Column(JSON, nullable=False, default=dict)
    context = Column(JSON, nullable=False, default=dict)
    current_step_position = Column(Integer, nullable=False, default=0)
    completed_steps_count = Column(Integer, nullable=False, default=0)
    failed_steps_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    workflow = relationship("Workflow", back_populates="executions")
    step_logs = relationship(
        "WorkflowStepLog",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="WorkflowStepLog.position",
    )

    @validates("status")
    def validate_status(self, key, value):
        if value not in EXECUTION_STATUSES:
            raise ValueError(f"Invalid execution status: {value!r}")
        return value

    @validates("trigger_source")
    def validate_trigger_source(self, key, value):
        # "event:<name>" identifies the event that fired the workflow
        if value not in TRIGGER_SOURCES and not str(value).startswith("event:"):
            raise ValueError(f"Invalid trigger source: {value!r}")
        return value

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def in_progress(self) -> bool:
        return self.status in IN_PROGRESS_STATUSES

    @property
    def can_cancel(self) -> bool:
        return self.in_progress

    def progress_percentage(self, total_steps: int) -> int:
        if not total_steps:
            return 0
        return round((self.completed_steps_count or 0) / total_steps * 100)

    @property
    def duration_seconds(self):
        if self.duration_ms is None:
            return None
        return self.duration_ms / 1000.0

    @property
    def duration_human(self):
        if self.duration_ms is None:
            return None

        seconds = self.duration_ms // 1000
        if seconds < 60:
            return f"{seconds}s"
        if seconds < 3600:
            return f"{seconds // 60}m {seconds % 60}s"
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"

    @property
    def trigger_description(self) -> str:
        if self.trigger_source == "manual":
            return "Manual trigger"
        if self.trigger_source == "schedule":
            return "Scheduled run"
        if self.trigger_source and self.trigger_source.startswith("event:"):
            event = self.trigger_source[len("event:"):].replace("_", " ")
            return f"Event: {event.capitalize()}"
        return self.trigger_source or ""

    def __repr__(self):
        return f"<WorkflowExecution {self.id} ({self.status})>"


class WorkflowStepLog(Base):
    """Durable record of one step's attempt within one execution."""

    __tablename__ = "workflow_step_logs"
    __table_args__ = (
        Index("ix_workflow_step_logs_execution_position", "execution_id", "position"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    execution_id = Column(String, ForeignKey("workflow_executions.id", ondelete="CASCADE"), nullable=False)
    step_id = Column(String, ForeignKey("workflow_steps.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    input_data = Column(JSON, nullable=False, default=dict)
    output_data = Column(JSON, nullable=False, default=dict)
    error_message = Column(Text, nullable=True)
    error_backtrace = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    execution = relationship("WorkflowExecution", back_populates="step_logs")
    step = relationship("WorkflowStep")

    @validates("status")
    def validate_status(self, key, value):
        if value not in STEP_LOG_STATUSES:
            raise ValueError(f"Invalid step log status: {value!r}")
        return value

    @property
    def duration_human(self):
        if self.duration_ms is None:
            return None
        if self.duration_ms < 1000:
            return f"{self.duration_ms}ms"
        if self.duration_ms < 60_000:
            return f"{self.duration_ms / 1000.0:.1f}s"
        seconds = self.duration_ms // 1000
        return f"{seconds // 60}m {seconds % 60}s"

    @property
    def error_summary(self):
        if not self.error_message:
            return None
        if len(self.error_message) <= 100:
            return self.error_message
        return self.error_message[:97] + "..."

    def __repr__(self):
        return f"<WorkflowStepLog {self.position} [{self.status}]>"
