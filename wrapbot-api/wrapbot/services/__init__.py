from wrapbot.services.errors import (
    InvalidStateError,
    LockContentionError,
    ProcessorError,
    QuotaExceededError,
    WatermarkError,
    WrapBotError,
)
from wrapbot.services.result import Result
from wrapbot.services.state_machine import (
    ConversationState,
    InvalidTransitionError,
    can_transition,
    require_state,
    transition,
)
