"""WorkflowExecution model for the workflow automation engine."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import ExecutionStatus
from db.base import BaseModel, TenantMixin


class WorkflowExecution(TenantMixin, BaseModel):
    """One run of a workflow in response to one trigger event instance.

    Retries reuse the same row: the retry sweeper and manual retries claim
    it again and move it to completed / retrying / failed.

    Attributes:
        id: Unique identifier (UUID string)
        tenant_id: Owning tenant
        workflow_id: Foreign key to Workflow
        trigger_event: Event that triggered this execution
        trigger_data: Snapshot of the event payload (immutable)
        status: running, completed, failed, retrying
        result: JSON summary on completion
        error: Error message if the execution failed
        error_stack: Formatted traceback for debugging
        retry_count: Number of retries scheduled so far
        next_retry_at: When the retry sweeper should pick the row up
        started_at: Start of the latest attempt
        completed_at: End of the latest attempt
        duration_ms: Duration of the latest attempt
    """

    __tablename__ = "workflow_executions"
    __table_args__ = (
        Index("ix_workflow_executions_workflow_status", "workflow_id", "status"),
    )

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    trigger_event: Mapped[str] = mapped_column(nullable=False)
    trigger_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        default=ExecutionStatus.PENDING.value, index=True
    )
    result: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_stack: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(default=0)
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(nullable=True)

    # Relationships
    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="executions", lazy="selectin"
    )
    logs: Mapped[list["WorkflowExecutionLog"]] = relationship(
        "WorkflowExecutionLog",
        back_populates="execution",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="(WorkflowExecutionLog.attempt, WorkflowExecutionLog.step_number)",
        lazy="noload",
    )
