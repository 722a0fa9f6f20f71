"""Execution history service: querying, stats and admin deletion."""

from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ExecutionStatus
from core.exceptions import ExecutionNotFoundError
from core.utils import utc_now_naive
from db.models.execution import WorkflowExecution
from db.models.execution_log import WorkflowExecutionLog
from db.models.workflow import Workflow
from services.base import BaseService

TREND_DAYS = 30
TOP_WORKFLOWS_LIMIT = 10


class ExecutionService(BaseService[WorkflowExecution]):
    """Service for workflow execution history."""

    def __init__(self, db: AsyncSession):
        super().__init__(WorkflowExecution, db)

    async def list_executions(
        self,
        tenant_id: str,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[WorkflowExecution], int]:
        """Newest-first executions; ``execution.workflow`` is eager-loaded."""
        where = []
        if start_date:
            where.append(WorkflowExecution.created_at >= start_date)
        if end_date:
            where.append(WorkflowExecution.created_at <= end_date)

        return await self.list(
            tenant_id=tenant_id,
            offset=offset,
            limit=limit,
            filters={"workflow_id": workflow_id, "status": status},
            where=where,
            order_by="created_at",
            order_desc=True,
        )

    async def get_execution(self, execution_id: str, tenant_id: str) -> WorkflowExecution:
        execution = await self.get_by_id_and_tenant(execution_id, tenant_id)
        if not execution:
            raise ExecutionNotFoundError(execution_id)
        return execution

    async def get_logs(self, execution_id: str, tenant_id: str) -> list[WorkflowExecutionLog]:
        """Step logs ordered by attempt, then step number."""
        await self.get_execution(execution_id, tenant_id)
        result = await self.db.execute(
            select(WorkflowExecutionLog)
            .where(WorkflowExecutionLog.execution_id == execution_id)
            .order_by(
                WorkflowExecutionLog.attempt.asc(),
                WorkflowExecutionLog.step_number.asc(),
                WorkflowExecutionLog.created_at.asc(),
            )
        )
        return list(result.scalars().all())

    async def delete_execution(self, execution_id: str, tenant_id: str) -> None:
        """Delete an execution together with its step logs."""
        await self.get_execution(execution_id, tenant_id)
        await self.db.execute(
            delete(WorkflowExecutionLog).where(WorkflowExecutionLog.execution_id == execution_id)
        )
        await self.delete(execution_id, tenant_id)

    async def get_stats_overview(
        self,
        tenant_id: str,
        workflow_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Status breakdown, 30-day daily trend and the most active workflows."""
        scope = [WorkflowExecution.tenant_id == tenant_id]
        if workflow_id:
            scope.append(WorkflowExecution.workflow_id == workflow_id)
        if start_date:
            scope.append(WorkflowExecution.created_at >= start_date)
        if end_date:
            scope.append(WorkflowExecution.created_at <= end_date)

        completed = case((WorkflowExecution.status == ExecutionStatus.COMPLETED.value, 1), else_=0)
        failed = case((WorkflowExecution.status == ExecutionStatus.FAILED.value, 1), else_=0)

        status_rows = (
            await self.db.execute(
                select(
                    WorkflowExecution.status,
                    func.count(WorkflowExecution.id),
                    func.avg(WorkflowExecution.duration_ms),
                )
                .where(*scope)
                .group_by(WorkflowExecution.status)
            )
        ).all()

        day = func.date(WorkflowExecution.created_at)
        trend_rows = (
            await self.db.execute(
                select(day, func.count(WorkflowExecution.id), func.sum(completed), func.sum(failed))
                .where(
                    WorkflowExecution.tenant_id == tenant_id,
                    WorkflowExecution.created_at >= utc_now_naive() - timedelta(days=TREND_DAYS),
                )
                .group_by(day)
                .order_by(day.asc())
            )
        ).all()

        execution_count = func.count(WorkflowExecution.id)
        top_rows = (
            await self.db.execute(
                select(
                    Workflow.id,
                    Workflow.name,
                    execution_count,
                    func.sum(completed),
                    func.sum(failed),
                    func.avg(WorkflowExecution.duration_ms),
                )
                .join(WorkflowExecution, WorkflowExecution.workflow_id == Workflow.id)
                .where(Workflow.tenant_id == tenant_id, *scope)
                .group_by(Workflow.id, Workflow.name)
                .order_by(execution_count.desc())
                .limit(TOP_WORKFLOWS_LIMIT)
            )
        ).all()

        return {
            "status_breakdown": [
                {"status": s, "count": c, "avg_duration": float(a) if a is not None else None}
                for s, c, a in status_rows
            ],
            "daily_trend": [
                {"date": str(d), "total": t, "completed": int(ok or 0), "failed": int(ko or 0)}
                for d, t, ok, ko in trend_rows
            ],
            "top_workflows": [
                {
                    "id": wid,
                    "name": name,
                    "execution_count": count,
                    "success_count": int(ok or 0),
                    "failure_count": int(ko or 0),
                    "avg_duration": float(avg) if avg is not None else None,
                }
                for wid, name, count, ok, ko, avg in top_rows
            ],
        }
