"""WorkflowExecutionLog model for the workflow automation engine."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class WorkflowExecutionLog(BaseModel):
    """Append-only record of one condition evaluation or action dispatch.

    Attributes:
        id: Unique identifier (UUID string)
        execution_id: Foreign key to WorkflowExecution
        attempt: retry_count of the run that wrote the step (0 = first run)
        step_number: Contiguous from 1 within an attempt; 1 is the condition step
        step_type: condition or action
        step_name: Human-readable step name (action type for actions)
        status: running, completed, failed, skipped
        input_data: Conditions or action descriptor
        output_data: Evaluation result or action result
        error: Error message if the step failed
        started_at / completed_at / duration_ms: Step timing
    """

    __tablename__ = "workflow_execution_logs"
    __table_args__ = (
        Index("ix_workflow_execution_logs_execution_step", "execution_id", "attempt", "step_number"),
    )

    execution_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_executions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attempt: Mapped[int] = mapped_column(default=0)
    step_number: Mapped[int] = mapped_column(nullable=False)
    step_type: Mapped[str] = mapped_column(nullable=False)
    step_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(nullable=False)
    input_data: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    output_data: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(nullable=True)

    # Relationships
    execution: Mapped["WorkflowExecution"] = relationship(
        "WorkflowExecution", back_populates="logs", lazy="noload"
    )
