"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
This makes it trivial to add /api/v2 later without touching existing routes.
"""

from fastapi import APIRouter

from api.routes import workflow_executions, workflow_triggers

api_v1_router = APIRouter()

# Execution history, retries and stats
api_v1_router.include_router(
    workflow_executions.router,
    prefix="/workflow-executions",
    tags=["Workflow Executions"],
)

# Trigger catalogue and manual events
api_v1_router.include_router(
    workflow_triggers.router,
    prefix="/workflow-triggers",
    tags=["Workflow Triggers"],
)
