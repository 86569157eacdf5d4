# automation/models/__init__.py
from automation.models.workflow import Workflow, WorkflowStep
from automation.models.workflow_execution import WorkflowExecution, WorkflowStepLog
from automation.models.workflow_template import WorkflowTemplate
from automation.models.notification import Notification


# Re-export all models
__all__ = ["Workflow", "WorkflowStep", "WorkflowExecution", "WorkflowStepLog", "WorkflowTemplate", "Notification"]
