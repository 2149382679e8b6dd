from enum import Enum
from typing import Optional

from pydantic import BaseModel


class EventKind(str, Enum):
    COMMAND = "command"
    PHOTO = "photo"
    BUTTON = "button"
    TEXT = "text"


class BotEvent(BaseModel):
    """Transport-neutral inbound event.

    payload is the command name without the slash, the resolved photo URL,
    the callback data of a pressed button, or the free text.
    """

    identity: str
    kind: EventKind
    payload: str = ""
    file_handle: Optional[str] = None  # platform file id for photo events
    callback_id: Optional[str] = None


class Reply(BaseModel):
    text: Optional[str] = None
    keyboard: Optional[dict] = None
    photo_url: Optional[str] = None
    photo_bytes: Optional[bytes] = None
    toast: bool = False  # answer to a button press rather than a chat message
