"""Trigger value types shared by the classifier and the trigger service."""

from dataclasses import dataclass, field
from typing import Any

from core.constants import TRIGGER_DESCRIPTIONS, TriggerType


@dataclass
class DetectedTrigger:
    """A semantic trigger derived from a submission.

    ``type`` is the event key workflows subscribe to; ``details`` explains
    why it fired (field, score, matched keywords, emotions...).
    """

    type: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type, "details": self.details}


def supported_triggers() -> list[dict]:
    """Catalogue of every trigger type a workflow can subscribe to."""
    return [
        {"type": trigger.value, "description": TRIGGER_DESCRIPTIONS[trigger]}
        for trigger in TriggerType
    ]
