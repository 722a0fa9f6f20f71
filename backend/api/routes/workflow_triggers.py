"""Workflow trigger endpoints: catalogue and manual event firing."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends

from api.schemas.trigger import SupportedTrigger, TriggerCatalogResponse, TriggerEventResponse
from app.dependencies import get_tenant_id, get_trigger_service
from services.trigger_service import WorkflowTriggerService

router = APIRouter(tags=["workflow-triggers"])


@router.get("/", response_model=TriggerCatalogResponse)
async def list_supported_triggers(
    tenant_id: str = Depends(get_tenant_id),
    service: WorkflowTriggerService = Depends(get_trigger_service),
) -> TriggerCatalogResponse:
    """
    Every trigger event a workflow can subscribe to.
    """
    return TriggerCatalogResponse(
        triggers=[SupportedTrigger(**t) for t in service.get_supported_triggers()]
    )


@router.post("/{event_type}", response_model=TriggerEventResponse)
async def trigger_event(
    event_type: str,
    event_data: Optional[dict[str, Any]] = Body(default=None),
    tenant_id: str = Depends(get_tenant_id),
    service: WorkflowTriggerService = Depends(get_trigger_service),
) -> TriggerEventResponse:
    """
    Fire ``event_type`` with the request body as trigger data.
    """
    result = await service.trigger_by_event(event_type, event_data or {}, tenant_id)
    return TriggerEventResponse(
        success=result["success"],
        event_type=result["eventType"],
        execution_ids=result["executionIds"],
    )
