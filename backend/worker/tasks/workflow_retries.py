"""Celery task that sweeps due workflow retries.

Beat fires this every 5 minutes. Each run gets its own event loop and a
fresh database engine, since pooled async connections cannot cross loops.
"""

import asyncio
import logging

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="worker.tasks.workflow_retries.process_workflow_retries",
    bind=True,
    max_retries=2,
    default_retry_delay=30,
    queue="workflows",
)
def process_workflow_retries(self):
    """Re-run every workflow execution whose retry is due."""
    logger.info("[retry-sweeper] Sweeping due workflow retries...")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(_sweep())
        logger.info(f"[retry-sweeper] Done: {result}")
        return result
    except Exception as exc:
        logger.error(f"[retry-sweeper] Sweep failed: {exc}", exc_info=True)
        raise self.retry(exc=exc)
    finally:
        loop.close()


async def _sweep() -> dict:
    from app.config import get_settings
    from db.session import worker_session_factory
    from workflow.engine import WorkflowEngine
    from workflow.retry_sweeper import RetrySweeper

    settings = get_settings()
    async with worker_session_factory() as session_factory:
        engine = WorkflowEngine(session_factory)
        sweeper = RetrySweeper(
            session_factory,
            engine,
            batch_size=settings.RETRY_SWEEP_BATCH_SIZE,
        )
        return await sweeper.process_retries()
