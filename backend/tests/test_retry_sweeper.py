"""Tests for the retry sweeper."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from core.utils import utc_now_naive
from db.models.execution import WorkflowExecution
from workflow.retry_sweeper import RetrySweeper

TENANT_ID = "tenant-1"
OK_ACTION = {"type": "sync_integration", "config": {"integration": "crm", "action": "noop"}}
CRITICAL_FAILURE = {"type": "create_ticket", "critical": True, "config": {}}


@pytest.fixture
def sweeper(session_factory, engine):
    return RetrySweeper(session_factory, engine, interval_seconds=0.05, startup_delay_seconds=0, batch_size=50)


@pytest.fixture
def add_execution(session_factory):
    """Insert an execution row directly in a given retry state."""

    async def _add(workflow, status="retrying", retry_count=1, due_in_seconds=-5, trigger_data=None):
        execution = WorkflowExecution(
            tenant_id=workflow.tenant_id,
            workflow_id=workflow.id,
            trigger_event=workflow.trigger_event,
            trigger_data=trigger_data or {"source": "test"},
            status=status,
            retry_count=retry_count,
            next_retry_at=utc_now_naive() + timedelta(seconds=due_in_seconds),
            error="previous failure",
        )
        async with session_factory() as session:
            session.add(execution)
            await session.commit()
        return execution

    return _add


@pytest.mark.integration
class TestProcessRetries:
    async def test_due_retry_succeeds(self, sweeper, make_workflow, add_execution, fetch_execution, email_service):
        workflow = await make_workflow(
            actions=[{"type": "send_email", "config": {"to": "{{email}}", "subject": "retry"}}]
        )
        execution = await add_execution(workflow, trigger_data={"email": "ada@example.com"})

        summary = await sweeper.process_retries()

        assert summary == {"processed": 1, "succeeded": 1, "failed": 0, "skipped": 0, "errors": []}
        stored = await fetch_execution(execution.id)
        assert stored.status == "completed"
        assert stored.retry_count == 1
        assert stored.error is None
        assert email_service.sent[0]["to"] == "ada@example.com"

    async def test_failing_retry_is_rescheduled_and_batch_continues(
        self, sweeper, make_workflow, add_execution, fetch_execution
    ):
        failing = await make_workflow(name="failing", actions=[CRITICAL_FAILURE])
        passing = await make_workflow(name="passing", actions=[OK_ACTION])
        bad = await add_execution(failing, due_in_seconds=-60)
        good = await add_execution(passing, due_in_seconds=-30)

        summary = await sweeper.process_retries()

        assert summary["processed"] == 2
        assert summary["succeeded"] == 1
        assert summary["failed"] == 1
        assert summary["errors"][0]["executionId"] == bad.id

        bad_row = await fetch_execution(bad.id)
        assert bad_row.status == "retrying"
        assert bad_row.retry_count == 2
        assert bad_row.next_retry_at > utc_now_naive() + timedelta(seconds=250)
        assert (await fetch_execution(good.id)).status == "completed"

    async def test_final_attempt_fails_permanently(self, sweeper, make_workflow, add_execution, fetch_execution):
        workflow = await make_workflow(actions=[CRITICAL_FAILURE])
        execution = await add_execution(workflow, retry_count=2)

        await sweeper.process_retries()

        stored = await fetch_execution(execution.id)
        assert stored.status == "failed"
        assert stored.next_retry_at is None
        assert stored.error.startswith("Max retries reached")

    async def test_ignores_rows_not_due_or_not_retrying(self, sweeper, make_workflow, add_execution, fetch_execution):
        workflow = await make_workflow(actions=[OK_ACTION])
        future = await add_execution(workflow, due_in_seconds=600)
        failed = await add_execution(workflow, status="failed")
        exhausted = await add_execution(workflow, retry_count=3)

        summary = await sweeper.process_retries()

        assert summary["processed"] == 0
        for execution in (future, failed, exhausted):
            stored = await fetch_execution(execution.id)
            assert stored.status == execution.status

    async def test_batch_size_and_order(self, session_factory, engine, make_workflow, add_execution, fetch_execution):
        workflow = await make_workflow(actions=[OK_ACTION])
        newest = await add_execution(workflow, due_in_seconds=-10)
        oldest = await add_execution(workflow, due_in_seconds=-300)
        middle = await add_execution(workflow, due_in_seconds=-60)

        sweeper = RetrySweeper(session_factory, engine, batch_size=2)
        summary = await sweeper.process_retries()

        assert summary["processed"] == 2
        assert (await fetch_execution(oldest.id)).status == "completed"
        assert (await fetch_execution(middle.id)).status == "completed"
        assert (await fetch_execution(newest.id)).status == "retrying"

    async def test_concurrent_sweep_is_a_no_op(self, sweeper, make_workflow, add_execution, session_factory):
        workflow = await make_workflow(actions=[OK_ACTION])
        execution = await add_execution(workflow)

        async with sweeper._lock:
            summary = await sweeper.process_retries()

        assert summary == {"skipped": True}
        async with session_factory() as session:
            stored = (
                await session.execute(select(WorkflowExecution).where(WorkflowExecution.id == execution.id))
            ).scalar_one()
        assert stored.status == "retrying"
        assert stored.retry_count == 1

    async def test_empty_sweep(self, sweeper):
        assert await sweeper.process_retries() == {
            "processed": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "errors": [],
        }


@pytest.mark.integration
class TestLifecycle:
    async def test_start_runs_sweeps_until_stopped(self, sweeper, make_workflow, add_execution, fetch_execution):
        workflow = await make_workflow(actions=[OK_ACTION])
        execution = await add_execution(workflow)

        sweeper.start()
        assert sweeper.is_running
        for _ in range(50):
            if (await fetch_execution(execution.id)).status == "completed":
                break
            await asyncio.sleep(0.05)
        await sweeper.stop()

        assert not sweeper.is_running
        assert (await fetch_execution(execution.id)).status == "completed"

    async def test_start_and_stop_are_idempotent(self, sweeper):
        sweeper.start()
        task = sweeper._task
        sweeper.start()
        assert sweeper._task is task

        await sweeper.stop()
        await sweeper.stop()
        assert not sweeper.is_running
