"""Workflow trigger schemas."""

from pydantic import BaseModel, Field
from typing import List


class SupportedTrigger(BaseModel):
    type: str = Field(description="Trigger event key")
    description: str


class TriggerCatalogResponse(BaseModel):
    triggers: List[SupportedTrigger]


class TriggerEventResponse(BaseModel):
    """Result of firing an event manually."""

    success: bool
    event_type: str
    execution_ids: List[str] = Field(description="Executions that finished without error")
