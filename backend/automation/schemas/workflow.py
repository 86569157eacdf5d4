from typing import Dict, List, Optional, Any
from datetime import datetime
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from automation.models.workflow import TRIGGER_TYPES, WORKFLOW_STATUSES


class StepBase(BaseModel):
    """Fields shared by step creation and update."""
    name: Optional[str] = Field(None, description="Display name; defaults to the step type's name")
    config: Dict[str, Any] = Field(default_factory=dict, description="Handler-specific configuration")
    conditions: Dict[str, Any] = Field(default_factory=dict, description="Rule or rule group guarding the step")
    enabled: bool = Field(True, description="Disabled steps are not executed")
    continue_on_failure: bool = Field(False, description="Keep running later steps if this one fails")


class StepCreate(StepBase):
    """Model for adding a step to a workflow."""
    step_type: str = Field(..., description="Registered step type, e.g. 'send_notification'")
    position: Optional[int] = Field(None, ge=1, description="1-based position; appended when omitted")


class StepDefinition(StepCreate):
    """A step inside a workflow creation request; position is required."""
    position: int = Field(..., ge=1, description="1-based position, unique within the workflow")


class StepUpdate(BaseModel):
    """Model for updating a workflow step."""
    name: Optional[str] = None
    position: Optional[int] = Field(None, ge=1)
    config: Optional[Dict[str, Any]] = None
    conditions: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None
    continue_on_failure: Optional[bool] = None


class StepReorder(BaseModel):
    """Every step ID of the workflow in the desired order."""
    step_ids: List[str] = Field(..., min_length=1)


class WorkflowCreate(BaseModel):
    """Model for creating a workflow."""
    name: str = Field(..., min_length=1, description="Workflow name")
    description: Optional[str] = Field(None, description="Workflow description")
    trigger_type: str = Field("manual", description="manual, schedule or event")
    trigger_config: Dict[str, Any] = Field(
        default_factory=dict,
        description="For schedule: {'cron': ..., 'timezone': ...}; for event: {'event_type': ...}",
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)
    steps: List[StepDefinition] = Field(default_factory=list)

    @field_validator("trigger_type")
    def validate_trigger_type(cls, v):
        if v not in TRIGGER_TYPES:
            raise ValueError(f"trigger_type must be one of {', '.join(TRIGGER_TYPES)}")
        return v

    @field_validator("steps")
    def validate_unique_positions(cls, v):
        positions = [step.position for step in v]
        if len(positions) != len(set(positions)):
            raise ValueError("Step positions must be unique")
        return v


class WorkflowUpdate(BaseModel):
    """Model for updating a workflow."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    trigger_type: Optional[str] = None
    trigger_config: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("trigger_type")
    def validate_trigger_type(cls, v):
        if v is not None and v not in TRIGGER_TYPES:
            raise ValueError(f"trigger_type must be one of {', '.join(TRIGGER_TYPES)}")
        return v


class TriggerRequest(BaseModel):
    """Additional data to pass to a manually triggered workflow."""
    trigger_data: Dict[str, Any] = Field(default_factory=dict)


class StepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workflow_id: str
    step_type: str
    name: Optional[str] = None
    display_name: str
    position: int
    config: Dict[str, Any] = Field(default_factory=dict)
    conditions: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool
    continue_on_failure: bool
    is_conditional: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkflowResponse(BaseModel):
    """Response model for workflow operations."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Workflow ID")
    tenant_id: str
    name: str
    description: Optional[str] = None
    status: str = Field(..., description=f"One of {', '.join(WORKFLOW_STATUSES)}")
    trigger_type: str
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("workflow_metadata", "metadata")
    )
    executions_count: int = 0
    last_executed_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    steps: List[StepResponse] = Field(default_factory=list)


class WorkflowListResponse(BaseModel):
    """Response model for listing workflows."""
    total: int = Field(..., description="Total number of workflows")
    items: List[WorkflowResponse] = Field(..., description="List of workflows")
    skip: int = Field(..., description="Number of workflows skipped")
    limit: int = Field(..., description="Maximum number of workflows returned")


class StepTypeResponse(BaseModel):
    """Metadata describing a registered step type."""
    type: str
    name: str
    description: str = ""
    category: str = "general"
    icon: str = "play"
    config_schema: Dict[str, Any] = Field(default_factory=dict)


class WorkflowTemplateResponse(BaseModel):
    """Summary of a workflow template with a preview of its steps."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    display_description: str = ""
    category: Optional[str] = None
    featured: bool = False
    icon: Optional[str] = None
    trigger_type: str = "manual"
    steps_count: int = 0
    steps_preview: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkflowTemplateDetailResponse(WorkflowTemplateResponse):
    definition: Dict[str, Any] = Field(default_factory=dict)


class WorkflowFromTemplate(BaseModel):
    """Overrides applied when creating a workflow from a template."""
    name: Optional[str] = Field(None, min_length=1, description="Override the template's workflow name")
    trigger_config: Optional[Dict[str, Any]] = Field(None, description="Merged over the template's trigger config")
