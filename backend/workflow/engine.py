"""Workflow Execution Engine: runs tenant workflows against trigger events.

For every active workflow subscribed to an event the engine:

1. Creates (or, for retries, re-claims) a ``workflow_executions`` row
2. Evaluates the workflow's conditions (step 1 of the step log)
3. Dispatches each action in order (steps 2..N+1)
4. Finalizes the row as completed, retrying, or (once retries run out) failed
5. Updates the workflow's rolling statistics

Retries reuse the same execution row. A retry claims the row with a
conditional update on its status, so two runners racing for the same
execution cannot both proceed; the loser gets ``ExecutionConflictError``.

Every state change is written in its own short session and committed
immediately: workflows for one event run concurrently and each step must
be visible to the history API as soon as it happens.
"""

import asyncio
import time
import traceback
from typing import Any, Optional

import structlog
from fastapi.encoders import jsonable_encoder
from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import ExecutionStatus, StepStatus, StepType
from core.exceptions import ExecutionConflictError, ExecutionNotFoundError, UnknownActionTypeError
from core.utils import safe_serialize, utc_now_naive
from db.models.execution import WorkflowExecution
from db.models.execution_log import WorkflowExecutionLog
from db.models.workflow import Workflow
from workflow import conditions as condition_evaluator
from workflow.actions import ActionDispatcher
from workflow.retry_policy import BackoffSchedule

logger = structlog.get_logger(__name__)

CONDITIONS_NOT_MET_MESSAGE = "Workflow conditions not met, skipped execution"
MAX_RETRIES_PREFIX = "Max retries reached"

_CLAIMABLE_STATUSES = (ExecutionStatus.RETRYING.value, ExecutionStatus.FAILED.value)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class WorkflowEngine:
    """Orchestrates workflow runs and persists their history.

    Args:
        session_factory: Async session factory for all engine writes
        dispatcher: Action dispatcher (defaults to one on the same factory)
        retry_policy: Backoff schedule (defaults to the configured one)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: Optional[ActionDispatcher] = None,
        retry_policy: Optional[BackoffSchedule] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or ActionDispatcher(session_factory)
        self.retry_policy = retry_policy or BackoffSchedule.from_settings()

    # ─── Entry points ──────────────────────────────────────────

    async def execute_triggered_workflows(
        self,
        trigger_event: str,
        trigger_data: dict,
        tenant_id: str,
    ) -> list[str]:
        """Run every active workflow of ``tenant_id`` subscribed to ``trigger_event``.

        Workflows run concurrently. A failing workflow is logged and left to
        its execution row; it never affects its siblings.

        Returns:
            Execution ids of the runs that finished without raising
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(Workflow)
                .where(
                    Workflow.tenant_id == tenant_id,
                    Workflow.trigger_event == trigger_event,
                    Workflow.is_active.is_(True),
                )
                .order_by(Workflow.created_at.asc())
            )
            workflows = list(result.scalars().all())

        if not workflows:
            logger.debug("No workflows for trigger", trigger_event=trigger_event, tenant_id=tenant_id)
            return []

        logger.info(
            "Executing workflows",
            trigger_event=trigger_event,
            workflow_count=len(workflows),
            tenant_id=tenant_id,
        )

        execution_ids = await asyncio.gather(
            *[self._execute_isolated(wf, trigger_data) for wf in workflows]
        )
        return [eid for eid in execution_ids if eid is not None]

    async def execute_workflow(
        self,
        workflow: Workflow,
        trigger_data: dict,
        execution_id: Optional[str] = None,
    ) -> str:
        """Run one workflow against ``trigger_data``.

        Without ``execution_id`` a new execution row is created. With one,
        the existing row is claimed for another attempt.

        Returns:
            The execution id

        Raises:
            ExecutionConflictError: The row could not be claimed
            Exception: Whatever made the run fail, after it was recorded
        """
        started = time.monotonic()
        trigger_data = trigger_data or {}

        if execution_id is None:
            execution_id = await self._create_execution(workflow, trigger_data)
            attempt = 0
        else:
            attempt = await self._claim_execution(workflow, execution_id)

        log = logger.bind(execution_id=execution_id, workflow_id=workflow.id, attempt=attempt)
        log.info("Starting workflow execution", workflow_name=workflow.name)

        try:
            passed = await self._evaluate_conditions(
                execution_id, attempt, workflow.conditions or [], trigger_data
            )

            if not passed:
                await self._complete_execution(
                    execution_id,
                    {"conditionsPassed": False, "message": CONDITIONS_NOT_MET_MESSAGE},
                    _elapsed_ms(started),
                )
                log.info("Workflow conditions not met")
                return execution_id

            action_results = await self._execute_actions(
                execution_id, attempt, workflow.actions or [], trigger_data, workflow.tenant_id
            )

            duration_ms = _elapsed_ms(started)
            await self._complete_execution(
                execution_id,
                {
                    "conditionsPassed": True,
                    "actionsExecuted": len(action_results),
                    "actionResults": action_results,
                },
                duration_ms,
            )
            await self._update_workflow_stats(workflow.id, success=True, duration_ms=duration_ms)

            log.info(
                "Workflow execution completed",
                duration_ms=duration_ms,
                actions_executed=len(action_results),
            )
            return execution_id

        except Exception as exc:
            duration_ms = _elapsed_ms(started)
            await self._fail_execution(execution_id, attempt, exc, duration_ms)
            await self._update_workflow_stats(workflow.id, success=False, duration_ms=duration_ms)

            log.error("Workflow execution failed", error=str(exc), exc_info=True)
            raise

    async def retry_execution(self, execution_id: str, tenant_id: str) -> str:
        """Re-run a failed or retrying execution on its own row.

        Raises:
            ExecutionNotFoundError: No such execution for this tenant
            ExecutionConflictError: The execution is not retryable or was claimed first
        """
        async with self.session_factory() as session:
            row = (
                await session.execute(
                    select(WorkflowExecution, Workflow)
                    .join(Workflow, Workflow.id == WorkflowExecution.workflow_id)
                    .where(
                        WorkflowExecution.id == execution_id,
                        WorkflowExecution.tenant_id == tenant_id,
                    )
                )
            ).first()

        if row is None:
            raise ExecutionNotFoundError(execution_id)

        execution, workflow = row
        if execution.status not in _CLAIMABLE_STATUSES:
            raise ExecutionConflictError(
                execution_id,
                f"Execution {execution_id} is {execution.status}; only failed executions can be retried",
            )

        logger.info("Manual retry requested", execution_id=execution_id, tenant_id=tenant_id)
        return await self.execute_workflow(workflow, execution.trigger_data or {}, execution_id=execution_id)

    async def _execute_isolated(self, workflow: Workflow, trigger_data: dict) -> Optional[str]:
        try:
            return await self.execute_workflow(workflow, trigger_data)
        except Exception as exc:
            logger.error(
                "Workflow execution failed",
                workflow_id=workflow.id,
                tenant_id=workflow.tenant_id,
                error=str(exc),
            )
            return None

    # ─── Phases ────────────────────────────────────────────────

    async def _evaluate_conditions(
        self,
        execution_id: str,
        attempt: int,
        conditions: list[dict],
        data: dict,
    ) -> bool:
        """Evaluate conditions as step 1; an empty list is logged as skipped."""
        if not conditions:
            now = utc_now_naive()
            await self._insert_step(
                execution_id,
                attempt,
                1,
                StepType.CONDITION,
                "Evaluate Conditions",
                StepStatus.SKIPPED,
                input_data=[],
                output_data={"result": True, "evaluatedConditions": 0},
                started_at=now,
                completed_at=now,
                duration_ms=0,
            )
            return True

        log_id = await self._log_step(
            execution_id, attempt, 1, StepType.CONDITION, "Evaluate Conditions", conditions
        )
        started = time.monotonic()
        try:
            result = condition_evaluator.evaluate(conditions, data)
        except Exception as exc:
            await self._complete_step(log_id, StepStatus.FAILED, None, str(exc), _elapsed_ms(started))
            raise

        await self._complete_step(
            log_id,
            StepStatus.COMPLETED,
            {"result": result, "evaluatedConditions": len(conditions)},
            None,
            _elapsed_ms(started),
        )
        return result

    async def _execute_actions(
        self,
        execution_id: str,
        attempt: int,
        actions: list[dict],
        data: dict,
        tenant_id: str,
    ) -> list[dict]:
        """Dispatch actions in order as steps 2..N+1.

        A failing action is recorded and the batch continues, unless the
        action is critical or its type is unknown.
        """
        results: list[dict] = []

        for step_number, action in enumerate(actions, start=2):
            action_type = action.get("type")
            log_id = await self._log_step(
                execution_id, attempt, step_number, StepType.ACTION, action_type, action
            )
            started = time.monotonic()

            try:
                output = safe_serialize(await self.dispatcher.execute(action, data, tenant_id))
            except Exception as exc:
                await self._complete_step(log_id, StepStatus.FAILED, None, str(exc), _elapsed_ms(started))
                logger.error(
                    "Action execution failed",
                    execution_id=execution_id,
                    action=action_type,
                    error=str(exc),
                )
                if action.get("critical") or isinstance(exc, UnknownActionTypeError):
                    raise
                results.append({"action": action_type, "success": False, "error": str(exc)})
                continue

            await self._complete_step(log_id, StepStatus.COMPLETED, output, None, _elapsed_ms(started))
            results.append({"action": action_type, "success": True, "result": output})

        return results

    # ─── Execution row ─────────────────────────────────────────

    async def _create_execution(self, workflow: Workflow, trigger_data: dict) -> str:
        execution = WorkflowExecution(
            tenant_id=workflow.tenant_id,
            workflow_id=workflow.id,
            trigger_event=workflow.trigger_event,
            trigger_data=jsonable_encoder(trigger_data),
            status=ExecutionStatus.RUNNING.value,
            retry_count=0,
            started_at=utc_now_naive(),
        )
        async with self.session_factory() as session:
            session.add(execution)
            await session.commit()
        return execution.id

    async def _claim_execution(self, workflow: Workflow, execution_id: str) -> int:
        """Move a retrying/failed row back to running; return its retry_count."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(WorkflowExecution)
                .where(
                    WorkflowExecution.id == execution_id,
                    WorkflowExecution.workflow_id == workflow.id,
                    WorkflowExecution.tenant_id == workflow.tenant_id,
                    WorkflowExecution.status.in_(_CLAIMABLE_STATUSES),
                )
                .values(
                    status=ExecutionStatus.RUNNING.value,
                    started_at=utc_now_naive(),
                    completed_at=None,
                    next_retry_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise ExecutionConflictError(execution_id)

            retry_count = (
                await session.execute(
                    select(WorkflowExecution.retry_count).where(WorkflowExecution.id == execution_id)
                )
            ).scalar_one()
            await session.commit()

        return retry_count

    async def _complete_execution(self, execution_id: str, result: dict, duration_ms: int) -> None:
        await self._update_execution(
            execution_id,
            status=ExecutionStatus.COMPLETED.value,
            result=safe_serialize(result),
            error=None,
            error_stack=None,
            next_retry_at=None,
            completed_at=utc_now_naive(),
            duration_ms=duration_ms,
        )

    async def _fail_execution(
        self,
        execution_id: str,
        retry_count: int,
        exc: BaseException,
        duration_ms: int,
    ) -> None:
        """Record a failed attempt as ``retrying`` or, once exhausted, ``failed``.

        Written in a single update: the row never sits in a claimable
        ``failed`` state while a retry is still going to be scheduled.
        """
        now = utc_now_naive()
        error = str(exc) or type(exc).__name__
        decision = self.retry_policy.decide(retry_count, now=now)
        values: dict[str, Any] = {
            "error_stack": "".join(traceback.format_exception(exc))[:10000],
            "completed_at": now,
            "duration_ms": duration_ms,
        }

        if decision.retry:
            values.update(
                status=ExecutionStatus.RETRYING.value,
                error=error,
                retry_count=decision.retry_count,
                next_retry_at=decision.next_retry_at,
            )
        else:
            values.update(
                status=ExecutionStatus.FAILED.value,
                error=f"{MAX_RETRIES_PREFIX} ({retry_count + 1} attempts): {error}",
                next_retry_at=None,
            )

        await self._update_execution(execution_id, **values)

        if decision.retry:
            logger.info(
                "Retry scheduled",
                execution_id=execution_id,
                retry_count=decision.retry_count,
                next_retry_at=decision.next_retry_at.isoformat(),
            )
        else:
            logger.warning("Retries exhausted", execution_id=execution_id, retry_count=retry_count)

    async def _update_execution(self, execution_id: str, **values: Any) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(WorkflowExecution)
                .where(WorkflowExecution.id == execution_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def _update_workflow_stats(self, workflow_id: str, success: bool, duration_ms: int) -> None:
        """Bump run counters; successful runs also feed the running mean duration."""
        values: dict[str, Any] = {
            "execution_count": Workflow.execution_count + 1,
            "last_executed_at": utc_now_naive(),
        }
        if success:
            values["success_count"] = Workflow.success_count + 1
            values["average_duration_ms"] = case(
                (Workflow.average_duration_ms.is_(None), duration_ms),
                else_=(Workflow.average_duration_ms * Workflow.success_count + duration_ms)
                // (Workflow.success_count + 1),
            )
        else:
            values["failure_count"] = Workflow.failure_count + 1

        async with self.session_factory() as session:
            await session.execute(
                update(Workflow)
                .where(Workflow.id == workflow_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    # ─── Step log ──────────────────────────────────────────────

    async def _log_step(
        self,
        execution_id: str,
        attempt: int,
        step_number: int,
        step_type: StepType,
        step_name: Optional[str],
        input_data: Any,
    ) -> str:
        return await self._insert_step(
            execution_id,
            attempt,
            step_number,
            step_type,
            step_name,
            StepStatus.RUNNING,
            input_data=input_data,
            started_at=utc_now_naive(),
        )

    async def _insert_step(
        self,
        execution_id: str,
        attempt: int,
        step_number: int,
        step_type: StepType,
        step_name: Optional[str],
        status: StepStatus,
        input_data: Any = None,
        output_data: Any = None,
        started_at=None,
        completed_at=None,
        duration_ms: Optional[int] = None,
    ) -> str:
        entry = WorkflowExecutionLog(
            execution_id=execution_id,
            attempt=attempt,
            step_number=step_number,
            step_type=step_type.value,
            step_name=str(step_name) if step_name is not None else None,
            status=status.value,
            input_data=safe_serialize(input_data),
            output_data=safe_serialize(output_data),
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
        )
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()
        return entry.id

    async def _complete_step(
        self,
        log_id: str,
        status: StepStatus,
        output_data: Any,
        error: Optional[str],
        duration_ms: int,
    ) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(WorkflowExecutionLog)
                .where(
                    WorkflowExecutionLog.id == log_id,
                    WorkflowExecutionLog.completed_at.is_(None),
                )
                .values(
                    status=status.value,
                    output_data=safe_serialize(output_data),
                    error=error,
                    completed_at=utc_now_naive(),
                    duration_ms=duration_ms,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
