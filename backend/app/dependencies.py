"""FastAPI dependency injection functions."""

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from db.session import AsyncSessionLocal
from services.trigger_service import WorkflowTriggerService
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


async def get_db() -> AsyncSession:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_tenant_id(x_tenant_id: str = Header(None, alias="X-Tenant-ID")) -> str:
    """
    Resolve the calling tenant.

    Authentication lives in the platform gateway, which forwards the
    tenant as the X-Tenant-ID header.
    """
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Tenant-ID header",
        )
    return x_tenant_id.strip()


def get_workflow_engine(request: Request) -> WorkflowEngine:
    """Engine created in the application lifespan."""
    return request.app.state.workflow_engine


def get_trigger_service(request: Request) -> WorkflowTriggerService:
    return request.app.state.trigger_service
