from wrapbot.schemas.bot import BotEvent, EventKind, Reply
from wrapbot.schemas.processor import ProcessorRequest, ProcessorResponse
from wrapbot.schemas.session import AttributeChoice, Session

__all__ = [
    "AttributeChoice",
    "BotEvent",
    "EventKind",
    "ProcessorRequest",
    "ProcessorResponse",
    "Reply",
    "Session",
]
