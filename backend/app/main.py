"""Workflow Automation Engine - FastAPI Application."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from api.v1.router import api_v1_router
from api.routes import health
from db.session import AsyncSessionLocal, close_db, init_db
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from services.trigger_service import WorkflowTriggerService
from workflow.engine import WorkflowEngine
from workflow.retry_sweeper import RetrySweeper

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup
    settings = get_settings()
    setup_logging()

    await init_db()

    engine = WorkflowEngine(AsyncSessionLocal)
    app.state.workflow_engine = engine
    app.state.trigger_service = WorkflowTriggerService(engine)
    logger.info("Workflow execution engine ready", actions=engine.dispatcher.supported_types)

    # In-process retry sweeper; disabled when Celery beat runs the sweep
    sweeper = None
    if settings.RETRY_SWEEPER_IN_PROCESS:
        sweeper = RetrySweeper(
            AsyncSessionLocal,
            engine,
            interval_seconds=settings.RETRY_SWEEP_INTERVAL_SECONDS,
            startup_delay_seconds=settings.RETRY_SWEEP_STARTUP_DELAY_SECONDS,
            batch_size=settings.RETRY_SWEEP_BATCH_SIZE,
        )
        sweeper.start()
    app.state.retry_sweeper = sweeper

    logger.info(
        "Application started",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )
    yield
    # Shutdown
    if sweeper is not None:
        await sweeper.stop()
    await close_db()
    logger.info("Application shut down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Event-driven workflow automation for survey responses: "
                    "conditions, actions, retries and execution history.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Tenant-ID"],
    )

    # Global exception handlers
    setup_exception_handlers(app)

    # Root health check (unversioned, for load balancers / k8s probes)
    app.include_router(health.router, prefix="/api", tags=["Health"])

    # Versioned API, all business endpoints under /api/v1
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
