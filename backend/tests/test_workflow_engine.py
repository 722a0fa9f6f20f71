"""Tests for the workflow execution engine."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from core.exceptions import (
    ActionConfigError,
    ExecutionConflictError,
    ExecutionNotFoundError,
    UnknownActionTypeError,
)
from core.utils import utc_now_naive
from db.models.execution import WorkflowExecution
from db.models.notification import Notification
from workflow.engine import CONDITIONS_NOT_MET_MESSAGE

TENANT_ID = "tenant-1"

OK_ACTION = {"type": "sync_integration", "config": {"integration": "crm", "action": "noop"}}
BAD_TICKET = {"type": "create_ticket", "config": {}}  # missing title
EMAIL_ACTION = {"type": "send_email", "config": {"to": "ops@example.com", "subject": "Alert"}}


async def _executions_for(session_factory, workflow_id) -> list[WorkflowExecution]:
    async with session_factory() as session:
        result = await session.execute(
            select(WorkflowExecution).where(WorkflowExecution.workflow_id == workflow_id)
        )
        return list(result.scalars().all())


async def _make_due(session_factory, execution_id):
    async with session_factory() as session:
        execution = await session.get(WorkflowExecution, execution_id)
        execution.next_retry_at = utc_now_naive() - timedelta(seconds=1)
        await session.commit()


# ─── Happy path ───

@pytest.mark.integration
class TestExecuteWorkflow:
    async def test_notification_workflow(self, engine, make_workflow, session_factory, fetch_execution, fetch_logs):
        workflow = await make_workflow(
            actions=[{"type": "send_notification", "config": {"userId": 1, "title": "Hi", "message": "{{name}}"}}]
        )

        execution_ids = await engine.execute_triggered_workflows("submission_completed", {"name": "Ada"}, TENANT_ID)

        assert len(execution_ids) == 1
        execution = await fetch_execution(execution_ids[0])
        assert execution.status == "completed"
        assert execution.workflow_id == workflow.id
        assert execution.trigger_event == "submission_completed"
        assert execution.trigger_data == {"name": "Ada"}
        assert execution.retry_count == 0
        assert execution.next_retry_at is None
        assert execution.duration_ms is not None
        assert execution.result["conditionsPassed"] is True
        assert execution.result["actionsExecuted"] == 1

        logs = await fetch_logs(execution.id)
        assert [(log.step_number, log.step_type, log.status) for log in logs] == [
            (1, "condition", "skipped"),
            (2, "action", "completed"),
        ]
        assert logs[0].output_data == {"result": True, "evaluatedConditions": 0}

        async with session_factory() as session:
            notification = (await session.execute(select(Notification))).scalar_one()
        assert notification.message == "Ada"

    async def test_condition_step_output(self, engine, make_workflow, fetch_logs):
        workflow = await make_workflow(
            conditions=[{"field": "score", "operator": "less_than", "value": 7}],
            actions=[OK_ACTION],
        )
        execution_id = await engine.execute_workflow(workflow, {"score": 3})

        logs = await fetch_logs(execution_id)
        assert logs[0].status == "completed"
        assert logs[0].output_data == {"result": True, "evaluatedConditions": 1}
        assert logs[0].input_data == workflow.conditions

    async def test_conditions_not_met_skips_actions(self, engine, make_workflow, email_service, fetch_execution, fetch_logs):
        workflow = await make_workflow(
            conditions=[{"field": "score", "operator": "less_than", "value": 7}],
            actions=[EMAIL_ACTION],
        )
        execution_id = await engine.execute_workflow(workflow, {"score": 9})

        execution = await fetch_execution(execution_id)
        assert execution.status == "completed"
        assert execution.result == {"conditionsPassed": False, "message": CONDITIONS_NOT_MET_MESSAGE}
        assert email_service.sent == []

        logs = await fetch_logs(execution_id)
        assert len(logs) == 1
        assert logs[0].output_data["result"] is False

    async def test_non_critical_failure_continues(self, engine, make_workflow, email_service, fetch_execution, fetch_logs):
        workflow = await make_workflow(actions=[OK_ACTION, BAD_TICKET, EMAIL_ACTION])

        execution_id = await engine.execute_workflow(workflow, {})

        execution = await fetch_execution(execution_id)
        assert execution.status == "completed"
        results = execution.result["actionResults"]
        assert [r["success"] for r in results] == [True, False, True]
        assert "title" in results[1]["error"]
        assert len(email_service.sent) == 1

        logs = await fetch_logs(execution_id)
        assert [log.status for log in logs] == ["skipped", "completed", "failed", "completed"]
        assert logs[2].error

    async def test_resolved_templates_reach_actions(self, engine, make_workflow, email_service):
        workflow = await make_workflow(
            actions=[{"type": "send_email", "config": {"to": "{{submission.email}}", "subject": "NPS {{submission.nps}}"}}]
        )
        await engine.execute_workflow(workflow, {"submission": {"email": "ada@example.com", "nps": 2}})
        assert email_service.sent[0]["to"] == "ada@example.com"
        assert email_service.sent[0]["subject"] == "NPS 2"


# ─── Failure path ───

@pytest.mark.integration
class TestFailures:
    async def test_critical_failure_aborts_batch(self, engine, make_workflow, email_service, session_factory, fetch_logs):
        workflow = await make_workflow(actions=[OK_ACTION, {**BAD_TICKET, "critical": True}, EMAIL_ACTION])

        with pytest.raises(ActionConfigError):
            await engine.execute_workflow(workflow, {})

        [execution] = await _executions_for(session_factory, workflow.id)
        assert execution.status == "retrying"
        assert execution.error_stack
        assert email_service.sent == []

        logs = await fetch_logs(execution.id)
        assert [log.step_number for log in logs] == [1, 2, 3]
        assert logs[-1].status == "failed"

    async def test_unknown_action_type_schedules_retry(self, engine, make_workflow, session_factory):
        workflow = await make_workflow(actions=[{"type": "unknown_action"}])

        execution_ids = await engine.execute_triggered_workflows("submission_completed", {"name": "Ada"}, TENANT_ID)

        assert execution_ids == []
        [execution] = await _executions_for(session_factory, workflow.id)
        assert "Unknown action type" in execution.error
        assert execution.status == "retrying"
        assert execution.retry_count == 1
        expected = utc_now_naive() + timedelta(seconds=60)
        assert abs((execution.next_retry_at - expected).total_seconds()) < 5

    async def test_unknown_action_aborts_even_when_not_critical(self, engine, make_workflow, email_service):
        workflow = await make_workflow(actions=[{"type": "teleport", "critical": False}, EMAIL_ACTION])

        with pytest.raises(UnknownActionTypeError):
            await engine.execute_workflow(workflow, {})
        assert email_service.sent == []

    async def test_retries_exhaust_after_three_attempts(self, engine, make_workflow, session_factory, fetch_execution, fetch_logs):
        workflow = await make_workflow(actions=[{**BAD_TICKET, "critical": True}])

        with pytest.raises(ActionConfigError):
            await engine.execute_workflow(workflow, {})
        [execution] = await _executions_for(session_factory, workflow.id)

        for expected_retry_count in (2, None):
            await _make_due(session_factory, execution.id)
            with pytest.raises(ActionConfigError):
                await engine.execute_workflow(workflow, execution.trigger_data, execution_id=execution.id)
            execution = await fetch_execution(execution.id)
            if expected_retry_count is not None:
                assert execution.status == "retrying"
                assert execution.retry_count == expected_retry_count

        assert execution.status == "failed"
        assert execution.retry_count == 2
        assert execution.next_retry_at is None
        assert execution.error.startswith("Max retries reached (3 attempts)")

        logs = await fetch_logs(execution.id)
        assert sorted({log.attempt for log in logs}) == [0, 1, 2]
        assert all(log.step_number in (1, 2) for log in logs)

    async def test_retry_reuses_execution_row(self, engine, make_workflow, webhook, session_factory, fetch_execution, fetch_logs):
        workflow = await make_workflow(
            actions=[{"type": "webhook", "critical": True, "config": {"url": "https://hooks.example.com/x"}}]
        )
        webhook.status_code = 503
        with pytest.raises(Exception):
            await engine.execute_workflow(workflow, {"id": 1})
        [execution] = await _executions_for(session_factory, workflow.id)

        webhook.status_code = 200
        await _make_due(session_factory, execution.id)
        returned_id = await engine.execute_workflow(workflow, {"id": 1}, execution_id=execution.id)

        assert returned_id == execution.id
        assert len(await _executions_for(session_factory, workflow.id)) == 1
        execution = await fetch_execution(execution.id)
        assert execution.status == "completed"
        assert execution.retry_count == 1
        assert execution.error is None
        assert execution.next_retry_at is None

        logs = await fetch_logs(execution.id)
        assert [(log.attempt, log.step_number, log.status) for log in logs] == [
            (0, 1, "skipped"),
            (0, 2, "failed"),
            (1, 1, "skipped"),
            (1, 2, "completed"),
        ]

    async def test_retry_uses_complete_trigger_snapshot(
        self, engine, make_workflow, email_service, session_factory, fetch_execution
    ):
        deep = leaf = {}
        for key in "abcdefghijkl":
            leaf[key] = {}
            leaf = leaf[key]
        leaf["score"] = 1
        payload = {"comment": "x" * 12000, "deep": deep}

        workflow = await make_workflow(
            actions=[{
                "type": "send_email",
                "critical": True,
                "config": {
                    "to": "ops@example.com",
                    "subject": "score {{deep.a.b.c.d.e.f.g.h.i.j.k.l.score}}",
                    "body": "{{comment}}",
                },
            }]
        )
        email_service.fail_with = RuntimeError("smtp down")
        with pytest.raises(RuntimeError):
            await engine.execute_workflow(workflow, payload)

        [execution] = await _executions_for(session_factory, workflow.id)
        assert execution.trigger_data == payload

        email_service.fail_with = None
        await engine.execute_workflow(workflow, execution.trigger_data, execution_id=execution.id)

        [sent] = email_service.sent
        assert len(sent["body"]) == 12000
        assert sent["subject"] == "score 1"
        assert (await fetch_execution(execution.id)).status == "completed"

    async def test_retryable_failure_is_written_once(self, engine, make_workflow, monkeypatch):
        workflow = await make_workflow(actions=[{**BAD_TICKET, "critical": True}])
        written_statuses = []
        update_execution = engine._update_execution

        async def recording_update(execution_id, **values):
            if "status" in values:
                written_statuses.append(values["status"])
            await update_execution(execution_id, **values)

        monkeypatch.setattr(engine, "_update_execution", recording_update)
        with pytest.raises(ActionConfigError):
            await engine.execute_workflow(workflow, {})

        assert written_statuses == ["retrying"]

    async def test_claim_after_failure_is_not_overwritten(self, engine, make_workflow, session_factory, monkeypatch):
        workflow = await make_workflow(actions=[{**BAD_TICKET, "critical": True}])
        update_stats = engine._update_workflow_stats
        claimed = []

        async def claim_then_update_stats(workflow_id, success, duration_ms):
            [execution] = await _executions_for(session_factory, workflow.id)
            claimed.append(await engine._claim_execution(workflow, execution.id))
            await update_stats(workflow_id, success=success, duration_ms=duration_ms)

        monkeypatch.setattr(engine, "_update_workflow_stats", claim_then_update_stats)
        with pytest.raises(ActionConfigError):
            await engine.execute_workflow(workflow, {})

        [execution] = await _executions_for(session_factory, workflow.id)
        assert claimed == [1]
        assert execution.status == "running"
        assert execution.retry_count == 1
        assert execution.next_retry_at is None

    async def test_sibling_workflows_are_isolated(self, engine, make_workflow, session_factory):
        failing = await make_workflow(name="failing", actions=[{**BAD_TICKET, "critical": True}])
        passing = await make_workflow(name="passing", actions=[OK_ACTION])

        execution_ids = await engine.execute_triggered_workflows("submission_completed", {}, TENANT_ID)

        [ok] = await _executions_for(session_factory, passing.id)
        [ko] = await _executions_for(session_factory, failing.id)
        assert execution_ids == [ok.id]
        assert ok.status == "completed"
        assert ko.status == "retrying"


# ─── Workflow selection ───

@pytest.mark.integration
class TestWorkflowSelection:
    async def test_only_active_workflows_of_tenant_and_event(self, engine, make_workflow, session_factory):
        match = await make_workflow(actions=[OK_ACTION])
        inactive = await make_workflow(is_active=False, actions=[OK_ACTION])
        other_tenant = await make_workflow(tenant_id="tenant-2", actions=[OK_ACTION])
        other_event = await make_workflow(trigger_event="ticket_created", actions=[OK_ACTION])

        execution_ids = await engine.execute_triggered_workflows("submission_completed", {}, TENANT_ID)

        assert len(execution_ids) == 1
        assert len(await _executions_for(session_factory, match.id)) == 1
        for workflow in (inactive, other_tenant, other_event):
            assert await _executions_for(session_factory, workflow.id) == []

    async def test_no_workflows(self, engine):
        assert await engine.execute_triggered_workflows("survey_started", {}, TENANT_ID) == []


# ─── Statistics ───

@pytest.mark.integration
class TestWorkflowStats:
    async def test_success_updates_stats(self, engine, make_workflow, fetch_workflow):
        workflow = await make_workflow(actions=[OK_ACTION])
        await engine.execute_workflow(workflow, {})
        await engine.execute_workflow(workflow, {})

        stored = await fetch_workflow(workflow.id)
        assert stored.execution_count == 2
        assert stored.success_count == 2
        assert stored.failure_count == 0
        assert stored.average_duration_ms is not None
        assert stored.last_executed_at is not None

    async def test_failure_updates_stats(self, engine, make_workflow, fetch_workflow):
        workflow = await make_workflow(actions=[{"type": "nope"}])
        with pytest.raises(UnknownActionTypeError):
            await engine.execute_workflow(workflow, {})

        stored = await fetch_workflow(workflow.id)
        assert stored.execution_count == 1
        assert stored.failure_count == 1
        assert stored.success_count == 0
        assert stored.average_duration_ms is None
        assert stored.last_executed_at is not None

    async def test_skipped_run_leaves_stats_untouched(self, engine, make_workflow, fetch_workflow):
        workflow = await make_workflow(conditions=[{"field": "x", "operator": "equals", "value": 1}])
        await engine.execute_workflow(workflow, {"x": 2})

        stored = await fetch_workflow(workflow.id)
        assert stored.execution_count == 0
        assert stored.last_executed_at is None


# ─── Claims and manual retry ───

@pytest.mark.integration
class TestRetryExecution:
    async def _failed_execution(self, engine, make_workflow, session_factory, actions):
        workflow = await make_workflow(actions=actions)
        with pytest.raises(Exception):
            await engine.execute_workflow(workflow, {"k": "v"})
        [execution] = await _executions_for(session_factory, workflow.id)
        return workflow, execution

    async def test_manual_retry(self, engine, make_workflow, session_factory, fetch_execution):
        workflow, execution = await self._failed_execution(
            engine, make_workflow, session_factory, [{**BAD_TICKET, "critical": True}]
        )
        workflow.actions = [OK_ACTION]
        async with session_factory() as session:
            await session.merge(workflow)
            await session.commit()

        assert await engine.retry_execution(execution.id, TENANT_ID) == execution.id
        assert (await fetch_execution(execution.id)).status == "completed"

    async def test_completed_execution_cannot_be_claimed(self, engine, make_workflow):
        workflow = await make_workflow(actions=[OK_ACTION])
        execution_id = await engine.execute_workflow(workflow, {})

        with pytest.raises(ExecutionConflictError):
            await engine.execute_workflow(workflow, {}, execution_id=execution_id)
        with pytest.raises(ExecutionConflictError):
            await engine.retry_execution(execution_id, TENANT_ID)

    async def test_unknown_or_foreign_execution(self, engine, make_workflow, session_factory):
        _, execution = await self._failed_execution(
            engine, make_workflow, session_factory, [{**BAD_TICKET, "critical": True}]
        )
        with pytest.raises(ExecutionNotFoundError):
            await engine.retry_execution("does-not-exist", TENANT_ID)
        with pytest.raises(ExecutionNotFoundError):
            await engine.retry_execution(execution.id, "tenant-2")

    async def test_concurrent_claims_run_once(self, engine, make_workflow, session_factory, fetch_logs):
        workflow, execution = await self._failed_execution(
            engine, make_workflow, session_factory, [{"type": "webhook", "critical": True, "config": {}}]
        )
        workflow.actions = [OK_ACTION]
        async with session_factory() as session:
            await session.merge(workflow)
            await session.commit()

        outcomes = await asyncio.gather(
            engine.execute_workflow(workflow, {"k": "v"}, execution_id=execution.id),
            engine.execute_workflow(workflow, {"k": "v"}, execution_id=execution.id),
            return_exceptions=True,
        )

        conflicts = [o for o in outcomes if isinstance(o, ExecutionConflictError)]
        assert len(conflicts) == 1
        assert execution.id in outcomes

        logs = await fetch_logs(execution.id)
        assert len([log for log in logs if log.attempt == 1]) == 2
