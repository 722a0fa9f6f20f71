"""Workflow model for the workflow automation engine."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel, TenantMixin


class Workflow(TenantMixin, BaseModel):
    """Tenant-authored automation rule: trigger + conditions + actions.

    Attributes:
        id: Unique identifier (UUID string)
        tenant_id: Owning tenant
        name: Workflow name
        description: Workflow description
        trigger_event: Event key the workflow subscribes to (e.g. submission_completed)
        conditions: JSON list of {field, operator, value, logic}
        actions: JSON list of {type, config, critical}
        is_active: Whether the workflow reacts to its trigger
        execution_count: Total runs (success + failure)
        success_count: Successful runs
        failure_count: Failed runs
        average_duration_ms: Mean duration of successful runs
        last_executed_at: Timestamp of the latest run
    """

    __tablename__ = "workflows"

    name: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    trigger_event: Mapped[str] = mapped_column(nullable=False, index=True)
    conditions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    actions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    execution_count: Mapped[int] = mapped_column(default=0)
    success_count: Mapped[int] = mapped_column(default=0)
    failure_count: Mapped[int] = mapped_column(default=0)
    average_duration_ms: Mapped[Optional[int]] = mapped_column(nullable=True)
    last_executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    executions: Mapped[list["WorkflowExecution"]] = relationship(
        "WorkflowExecution",
        back_populates="workflow",
        cascade="all, delete-orphan",
        lazy="noload",
    )
