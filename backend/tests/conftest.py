"""Shared pytest fixtures for the workflow engine test suite.

Provides:
- A file-backed async SQLite database per test (no PostgreSQL needed)
- Session factory, action dispatcher and engine wired to that database
- Fake email service and a mock HTTP transport for webhook actions
- Workflow / execution factories
"""

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_workflow_engine.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("RETRY_SWEEPER_IN_PROCESS", "false")

from db.session import create_db_engine, create_session_factory, init_db  # noqa: E402

TENANT_ID = "tenant-1"
OTHER_TENANT_ID = "tenant-2"


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}"


@pytest_asyncio.fixture
async def db_engine(db_url):
    """Fresh database per test; the engine commits in many short sessions."""
    engine = create_db_engine(db_url)
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class FakeEmailService:
    """Records sends instead of talking to SMTP."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_with: Exception | None = None

    async def send_transactional_email(self, to, subject, body, from_address=None, tenant_id=None):
        if self.fail_with is not None:
            raise self.fail_with
        message = {"to": to, "subject": subject, "body": body, "from": from_address, "tenantId": tenant_id}
        self.sent.append(message)
        return {"sent": True, "to": to, "subject": subject}


class WebhookRecorder:
    """httpx MockTransport handler with a scriptable status code."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.payload: dict = {"ok": True}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def webhook() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
def dispatcher(session_factory, email_service, webhook):
    from app.config import get_settings
    from workflow.actions import ActionDispatcher

    return ActionDispatcher(
        session_factory,
        email_service=email_service,
        http_transport=httpx.MockTransport(webhook),
        settings=get_settings(),
    )


@pytest.fixture
def engine(session_factory, dispatcher):
    from workflow.engine import WorkflowEngine
    from workflow.retry_policy import BackoffSchedule

    return WorkflowEngine(session_factory, dispatcher=dispatcher, retry_policy=BackoffSchedule())


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_workflow(session_factory):
    """Factory: ``await make_workflow(actions=[...], conditions=[...])``."""
    from db.models.workflow import Workflow

    async def _make(**overrides) -> Workflow:
        fields = {
            "tenant_id": TENANT_ID,
            "name": "Test Workflow",
            "description": "A workflow for testing",
            "trigger_event": "submission_completed",
            "conditions": [],
            "actions": [],
            "is_active": True,
        }
        fields.update(overrides)
        workflow = Workflow(**fields)
        async with session_factory() as session:
            session.add(workflow)
            await session.commit()
        return workflow

    return _make


@pytest.fixture
def fetch_execution(session_factory):
    from db.models.execution import WorkflowExecution

    async def _fetch(execution_id: str) -> WorkflowExecution:
        async with session_factory() as session:
            return await session.get(WorkflowExecution, execution_id)

    return _fetch


@pytest.fixture
def fetch_logs(session_factory):
    from db.models.execution_log import WorkflowExecutionLog

    async def _fetch(execution_id: str) -> list[WorkflowExecutionLog]:
        async with session_factory() as session:
            result = await session.execute(
                select(WorkflowExecutionLog)
                .where(WorkflowExecutionLog.execution_id == execution_id)
                .order_by(WorkflowExecutionLog.attempt, WorkflowExecutionLog.step_number)
            )
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
def fetch_workflow(session_factory):
    from db.models.workflow import Workflow

    async def _fetch(workflow_id: str) -> Workflow:
        async with session_factory() as session:
            return await session.get(Workflow, workflow_id)

    return _fetch
