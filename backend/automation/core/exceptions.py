"""Exception taxonomy for the workflow engine.

Precondition errors (``NotExecutableError``, ``NotResumableError``,
``NotCancellableError``) are raised synchronously to the caller before any
state changes. Step errors are caught by the executor and recorded on the
step log. ``OrchestrationError`` is the only error that escapes a run, so the
task layer can retry it.
"""


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class NotExecutableError(WorkflowError):
    """Workflow is not active or has no enabled steps."""


class NotResumableError(WorkflowError):
    """Execution is not failed or has no failed step logs."""


class NotCancellableError(WorkflowError):
    """Execution is already finished."""


class WorkflowDefinitionError(WorkflowError):
    """Workflow or step definition is invalid."""


class StepExecutionError(WorkflowError):
    """A step handler failed."""


class UnknownStepTypeError(StepExecutionError):
    """No handler is registered for the step type."""

    def __init__(self, step_type: str):
        self.step_type = step_type
        super().__init__(f"Unknown step type: {step_type}")


class StopWorkflowError(StepExecutionError):
    """Raised by a step to halt the remaining steps of a run."""


class OrchestrationError(WorkflowError):
    """Failure outside of a step handler while driving an execution."""


class ExecutionNotFoundError(WorkflowError):
    """The execution referenced by a queued task no longer exists."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} not found")


class WorkflowStateError(WorkflowError):
    """Lifecycle transition not allowed from the workflow's current status."""
