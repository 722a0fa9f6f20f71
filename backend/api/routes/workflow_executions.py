"""Workflow execution history and management endpoints."""

from datetime import datetime
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import MessageResponse, PaginationInfo
from api.schemas.execution import (
    ExecutionDetailResponse,
    ExecutionListResponse,
    ExecutionLogResponse,
    ExecutionResponse,
    ExecutionStatsResponse,
    RetryResponse,
)
from app.dependencies import get_db, get_tenant_id, get_workflow_engine
from core.constants import ExecutionStatus
from core.exceptions import ExecutionConflictError, ExecutionNotFoundError
from services.execution_service import ExecutionService
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workflow-executions"])


def _execution_to_response(ex) -> ExecutionResponse:
    """Convert a WorkflowExecution ORM object to response schema."""
    return ExecutionResponse(
        id=ex.id,
        workflow_id=ex.workflow_id,
        workflow_name=ex.workflow.name if ex.workflow else None,
        trigger_event=ex.trigger_event,
        trigger_data=ex.trigger_data,
        status=ex.status,
        result=ex.result,
        error=ex.error,
        retry_count=ex.retry_count,
        next_retry_at=ex.next_retry_at,
        started_at=ex.started_at,
        completed_at=ex.completed_at,
        duration_ms=ex.duration_ms,
        created_at=ex.created_at,
    )


@router.get("/", response_model=ExecutionListResponse)
async def list_executions(
    workflow_id: Optional[str] = Query(None, description="Filter by workflow ID"),
    exec_status: Optional[ExecutionStatus] = Query(None, alias="status", description="Filter by status"),
    start_date: Optional[datetime] = Query(None, description="Created at or after"),
    end_date: Optional[datetime] = Query(None, description="Created at or before"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> ExecutionListResponse:
    """
    List workflow executions, newest first (paginated, filterable).
    """
    svc = ExecutionService(db)
    executions, total = await svc.list_executions(
        tenant_id=tenant_id,
        workflow_id=workflow_id,
        status=exec_status.value if exec_status else None,
        start_date=start_date,
        end_date=end_date,
        offset=offset,
        limit=limit,
    )

    return ExecutionListResponse(
        executions=[_execution_to_response(ex) for ex in executions],
        pagination=PaginationInfo(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(executions) < total,
        ),
    )


@router.get("/stats/overview", response_model=ExecutionStatsResponse)
async def stats_overview(
    workflow_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> ExecutionStatsResponse:
    """
    Status breakdown, daily trend for the last 30 days, and top 10 workflows.
    """
    svc = ExecutionService(db)
    stats = await svc.get_stats_overview(
        tenant_id, workflow_id=workflow_id, start_date=start_date, end_date=end_date
    )
    return ExecutionStatsResponse(**stats)


@router.get("/{execution_id}", response_model=ExecutionDetailResponse)
async def get_execution(
    execution_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> ExecutionDetailResponse:
    """
    Get execution details by ID, including the step log of every attempt.
    """
    svc = ExecutionService(db)
    ex = await svc.get_execution(execution_id, tenant_id)
    logs = await svc.get_logs(execution_id, tenant_id)

    return ExecutionDetailResponse(
        **_execution_to_response(ex).model_dump(),
        error_stack=ex.error_stack,
        logs=[ExecutionLogResponse.model_validate(log) for log in logs],
    )


@router.get("/{execution_id}/logs", response_model=list[ExecutionLogResponse])
async def get_execution_logs(
    execution_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> list[ExecutionLogResponse]:
    """
    Step-by-step log, ordered by attempt and step number.
    """
    svc = ExecutionService(db)
    logs = await svc.get_logs(execution_id, tenant_id)
    return [ExecutionLogResponse.model_validate(log) for log in logs]


@router.post("/{execution_id}/retry", response_model=RetryResponse)
async def retry_execution(
    execution_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    engine: WorkflowEngine = Depends(get_workflow_engine),
) -> RetryResponse:
    """
    Re-run a failed execution on the same execution record.

    Returns the execution as it stands after the attempt; a retry that fails
    again is still a 200 with the failure recorded on the execution.
    """
    svc = ExecutionService(db)
    ex = await svc.get_execution(execution_id, tenant_id)

    if ex.status != ExecutionStatus.FAILED.value:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail="Only failed executions can be retried",
        )

    message = "Workflow retry completed"
    try:
        await engine.retry_execution(execution_id, tenant_id)
    except (ExecutionConflictError, ExecutionNotFoundError):
        raise
    except Exception as e:
        logger.warning(f"Manual retry of {execution_id} failed: {e}")
        message = "Workflow retry failed"

    await db.refresh(ex)
    logger.info(f"Manual retry of {execution_id} by tenant {tenant_id}: {ex.status}")
    return RetryResponse(message=message, execution=_execution_to_response(ex))


@router.delete("/{execution_id}", response_model=MessageResponse)
async def delete_execution(
    execution_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Delete an execution and its step logs (administrative).
    """
    svc = ExecutionService(db)
    await svc.delete_execution(execution_id, tenant_id)
    logger.info(f"Execution {execution_id} deleted by tenant {tenant_id}")
    return MessageResponse(message="Execution deleted")
