"""Retry sweeper: re-runs workflow executions whose retry is due.

Picks up to ``batch_size`` executions with ``status='retrying'``,
``next_retry_at <= now`` and ``retry_count < max_retries``, oldest due first,
and hands each back to the engine on its own row. One failing retry never
stops the rest of the batch.

Runs either in-process (``start()`` / ``stop()`` from the API lifespan) or
from Celery beat via ``worker.tasks.workflow_retries``.

Important: all datetime comparisons use NAIVE UTC to match the database
column type (TIMESTAMP WITHOUT TIME ZONE).
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import ExecutionStatus
from core.exceptions import ExecutionConflictError
from core.utils import utc_now_naive
from db.models.execution import WorkflowExecution
from db.models.workflow import Workflow
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


class RetrySweeper:
    """Periodic processor for due workflow retries.

    Args:
        session_factory: Async session factory used for the due-retry query
        engine: Engine that re-runs each execution
        interval_seconds: Delay between sweeps
        startup_delay_seconds: Delay before the first sweep
        batch_size: Max executions handled per sweep
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: WorkflowEngine,
        interval_seconds: float = 300,
        startup_delay_seconds: float = 30,
        batch_size: int = 50,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self.batch_size = batch_size
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def process_retries(self) -> dict:
        """Run one sweep.

        Returns ``{"skipped": True}`` without touching the database when a
        sweep is already in progress.
        """
        if self._lock.locked():
            logger.debug("[retry-sweeper] Sweep already in progress, skipping")
            return {"skipped": True}

        async with self._lock:
            return await self._sweep()

    async def _sweep(self) -> dict:
        now = utc_now_naive()
        max_retries = self.engine.retry_policy.max_retries
        summary = {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0, "errors": []}

        async with self.session_factory() as session:
            result = await session.execute(
                select(WorkflowExecution, Workflow)
                .join(Workflow, Workflow.id == WorkflowExecution.workflow_id)
                .where(WorkflowExecution.status == ExecutionStatus.RETRYING.value)
                .where(WorkflowExecution.next_retry_at.is_not(None))
                .where(WorkflowExecution.next_retry_at <= now)
                .where(WorkflowExecution.retry_count < max_retries)
                .order_by(WorkflowExecution.next_retry_at.asc())
                .limit(self.batch_size)
            )
            due = result.all()

        if not due:
            logger.debug("[retry-sweeper] No due retries")
            return summary

        logger.info(f"[retry-sweeper] Found {len(due)} due retr{'y' if len(due) == 1 else 'ies'}")

        for execution, workflow in due:
            summary["processed"] += 1
            try:
                await self.engine.execute_workflow(
                    workflow,
                    execution.trigger_data or {},
                    execution_id=execution.id,
                )
                summary["succeeded"] += 1
                logger.info(
                    f"[retry-sweeper] Retry succeeded for execution {execution.id} "
                    f"(workflow: {workflow.name}, attempt {execution.retry_count + 1})"
                )
            except ExecutionConflictError:
                summary["skipped"] += 1
                logger.info(f"[retry-sweeper] Execution {execution.id} claimed elsewhere, skipping")
            except Exception as e:
                summary["failed"] += 1
                summary["errors"].append({"executionId": execution.id, "error": str(e)})
                logger.error(f"[retry-sweeper] Retry failed for execution {execution.id}: {e}")

        logger.info(
            f"[retry-sweeper] Done: processed={summary['processed']} "
            f"succeeded={summary['succeeded']} failed={summary['failed']} "
            f"skipped={summary['skipped']}"
        )
        return summary

    # ─── Background loop ───────────────────────────────────────

    def start(self) -> None:
        """Schedule the periodic sweep on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run_loop(), name="workflow-retry-sweeper")
        logger.info(
            f"[retry-sweeper] Started (first sweep in {self.startup_delay_seconds}s, "
            f"then every {self.interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("[retry-sweeper] Stopped")

    async def _run_loop(self) -> None:
        await asyncio.sleep(self.startup_delay_seconds)
        while True:
            try:
                await self.process_retries()
            except Exception as e:
                logger.error(f"[retry-sweeper] Sweep failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)
