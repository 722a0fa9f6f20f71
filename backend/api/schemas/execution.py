"""Workflow execution history schemas."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, List, Optional

from api.schemas.common import PaginationInfo


class ExecutionLogResponse(BaseModel):
    """One step of an execution attempt."""

    id: str = Field(description="Log entry ID")
    execution_id: str = Field(description="Execution ID")
    attempt: int = Field(description="Attempt number (0 = first run)")
    step_number: int = Field(description="Step number within the attempt")
    step_type: str = Field(description="condition or action")
    step_name: Optional[str] = Field(default=None, description="Step name / action type")
    status: str = Field(description="running, completed, failed, skipped")
    input_data: Optional[Any] = Field(default=None, description="Conditions or action descriptor")
    output_data: Optional[Any] = Field(default=None, description="Step result")
    error: Optional[str] = Field(default=None, description="Error message if the step failed")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    class Config:
        from_attributes = True


class ExecutionResponse(BaseModel):
    """Workflow execution information response."""

    id: str = Field(description="Execution ID")
    workflow_id: str = Field(description="Workflow ID")
    workflow_name: Optional[str] = Field(default=None, description="Workflow name")
    trigger_event: str = Field(description="Event that triggered the execution")
    trigger_data: Optional[dict] = Field(default=None, description="Event payload snapshot")
    status: str = Field(description="Execution status (running, completed, failed, retrying)")
    result: Optional[dict] = Field(default=None, description="Result summary")
    error: Optional[str] = Field(default=None, description="Error message if execution failed")
    retry_count: int = Field(default=0, description="Number of retries scheduled")
    next_retry_at: Optional[datetime] = Field(default=None, description="When the next retry is due")
    started_at: Optional[datetime] = Field(default=None, description="Start of the latest attempt")
    completed_at: Optional[datetime] = Field(default=None, description="End of the latest attempt")
    duration_ms: Optional[int] = Field(default=None, description="Duration of the latest attempt")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExecutionDetailResponse(ExecutionResponse):
    """Execution with its error stack and step logs."""

    error_stack: Optional[str] = None
    logs: List[ExecutionLogResponse] = Field(default_factory=list)


class ExecutionListResponse(BaseModel):
    """Paginated list of executions."""

    executions: List[ExecutionResponse] = Field(description="List of executions")
    pagination: PaginationInfo


class RetryResponse(BaseModel):
    """Outcome of a manual retry."""

    message: str
    execution: ExecutionResponse


class StatusBreakdown(BaseModel):
    status: str
    count: int
    avg_duration: Optional[float] = None


class DailyTrend(BaseModel):
    date: str
    total: int
    completed: int
    failed: int


class TopWorkflow(BaseModel):
    id: str
    name: str
    execution_count: int
    success_count: int
    failure_count: int
    avg_duration: Optional[float] = None


class ExecutionStatsResponse(BaseModel):
    """Execution statistics overview."""

    status_breakdown: List[StatusBreakdown]
    daily_trend: List[DailyTrend]
    top_workflows: List[TopWorkflow]
