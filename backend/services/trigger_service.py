"""Trigger service: turns business events into workflow executions."""

import asyncio
from typing import Any

import structlog

from core.constants import TriggerType
from triggers.base import DetectedTrigger, supported_triggers
from triggers.classifier import classify_submission
from workflow.engine import WorkflowEngine

logger = structlog.get_logger(__name__)


class WorkflowTriggerService:
    """Fans submissions and ad-hoc events out to subscribed workflows."""

    def __init__(self, engine: WorkflowEngine):
        self.engine = engine

    async def analyze_and_trigger(
        self,
        submission: dict,
        form_id: str,
        tenant_id: str,
    ) -> list[DetectedTrigger]:
        """Classify a completed submission and run every matching workflow.

        Always fires ``submission_completed``, plus one fan-out per detected
        trigger. Trigger analysis never fails the submission pipeline: any
        error is logged and an empty list is returned.
        """
        submission_id = submission.get("id") if isinstance(submission, dict) else None
        try:
            triggers = classify_submission(submission)
            trigger_data = {
                "formId": form_id,
                "submission": submission,
                "triggers": [t.type for t in triggers],
            }

            runs = [
                self.engine.execute_triggered_workflows(
                    TriggerType.SUBMISSION_COMPLETED.value, trigger_data, tenant_id
                )
            ]
            for trigger in triggers:
                runs.append(
                    self.engine.execute_triggered_workflows(
                        trigger.type,
                        {**trigger_data, "triggerDetails": trigger.details},
                        tenant_id,
                    )
                )

            outcomes = await asyncio.gather(*runs, return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    logger.error("Trigger fan-out failed", submission_id=submission_id, error=str(outcome))

            logger.info(
                "Triggers executed",
                form_id=form_id,
                submission_id=submission_id,
                trigger_count=len(triggers) + 1,
                trigger_types=[TriggerType.SUBMISSION_COMPLETED.value] + trigger_data["triggers"],
            )
            return triggers

        except Exception as e:
            logger.error("Failed to analyze triggers", submission_id=submission_id, error=str(e))
            return []

    async def trigger_by_event(self, event_type: str, event_data: dict[str, Any], tenant_id: str) -> dict:
        """Manually fire ``event_type`` for a tenant (testing / integrations)."""
        try:
            execution_ids = await self.engine.execute_triggered_workflows(event_type, event_data, tenant_id)
        except Exception as e:
            logger.error("Manual trigger failed", event_type=event_type, tenant_id=tenant_id, error=str(e))
            raise

        logger.info("Manual trigger executed", event_type=event_type, tenant_id=tenant_id)
        return {"success": True, "eventType": event_type, "executionIds": execution_ids}

    @staticmethod
    def get_supported_triggers() -> list[dict]:
        return supported_triggers()
