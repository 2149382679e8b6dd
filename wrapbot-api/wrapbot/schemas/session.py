from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from wrapbot.services.state_machine import ConversationState


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AttributeChoice(BaseModel):
    value: str  # canonical key sent to the processor, e.g. "red"
    display: str  # label in the session language, e.g. "Красный"


class Session(BaseModel):
    state: ConversationState = ConversationState.IDLE
    language: Optional[str] = None
    input_image_ref: Optional[str] = None
    input_image_handle: Optional[str] = None
    selected_attributes: dict[str, AttributeChoice] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)

    def attribute_value(self, category: str) -> Optional[str]:
        choice = self.selected_attributes.get(category)
        return choice.value if choice else None

    def attribute_display(self, category: str) -> Optional[str]:
        choice = self.selected_attributes.get(category)
        return choice.display if choice else None
