from typing import Dict, List, Optional, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class StepLogResponse(BaseModel):
    """Response model for one step's attempt within an execution."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    execution_id: str
    step_id: str
    position: int
    status: str = Field(..., description="pending, running, completed, failed or skipped")
    input_data: Dict[str, Any] = Field(default_factory=dict)
    output_data: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    error_summary: Optional[str] = None
    error_backtrace: Optional[str] = None
    retry_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    duration_human: Optional[str] = None


class ExecutionResponse(BaseModel):
    """Response model for workflow executions."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Execution ID")
    workflow_id: str = Field(..., description="ID of the associated workflow")
    tenant_id: str
    status: str = Field(..., description="Execution status (pending, running, completed, failed, cancelled)")
    trigger_source: str
    trigger_description: str = ""
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    current_step_position: int = 0
    completed_steps_count: int = 0
    failed_steps_count: int = 0
    error_message: Optional[str] = Field(None, description="Error message if execution failed")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    duration_human: Optional[str] = None
    is_finished: bool = False
    created_at: Optional[datetime] = None


class ExecutionDetailResponse(ExecutionResponse):
    """Execution with its context and step logs."""
    context: Dict[str, Any] = Field(default_factory=dict)
    step_logs: List[StepLogResponse] = Field(default_factory=list)


class ExecutionListResponse(BaseModel):
    """Response model for listing executions."""
    total: int = Field(..., description="Total number of executions")
    items: List[ExecutionResponse] = Field(..., description="List of executions")
    skip: int = Field(..., description="Number of executions skipped")
    limit: int = Field(..., description="Maximum number of executions returned")


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    message: str
    notification_type: str
    source: Optional[str] = None
    source_id: Optional[str] = None
    read: bool = False
    created_at: Optional[datetime] = None
