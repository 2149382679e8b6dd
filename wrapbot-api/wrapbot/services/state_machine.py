from enum import Enum

from wrapbot.services.errors import InvalidStateError


class ConversationState(str, Enum):
    IDLE = "IDLE"
    AWAITING_LANGUAGE = "AWAITING_LANGUAGE"
    AWAITING_SUBJECT_IMAGE = "AWAITING_SUBJECT_IMAGE"
    AWAITING_COLOR = "AWAITING_COLOR"
    AWAITING_FINISH = "AWAITING_FINISH"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


# /start is handled as a reset, not a transition, so it is valid from anywhere.
VALID_TRANSITIONS = {
    ConversationState.IDLE: [ConversationState.AWAITING_LANGUAGE],
    ConversationState.AWAITING_LANGUAGE: [ConversationState.AWAITING_SUBJECT_IMAGE],
    ConversationState.AWAITING_SUBJECT_IMAGE: [ConversationState.AWAITING_COLOR],
    ConversationState.AWAITING_COLOR: [ConversationState.AWAITING_FINISH],
    ConversationState.AWAITING_FINISH: [ConversationState.PROCESSING],
    ConversationState.PROCESSING: [ConversationState.COMPLETED, ConversationState.IDLE],
    ConversationState.COMPLETED: [ConversationState.AWAITING_SUBJECT_IMAGE],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: ConversationState, to_state: ConversationState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: ConversationState, to_state: ConversationState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: ConversationState, to_state: ConversationState) -> ConversationState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def require_state(current: ConversationState, expected: ConversationState) -> None:
    """Reject an event that is not valid for the current state."""
    if current != expected:
        raise InvalidStateError(expected, current)


def start_processing(current: ConversationState) -> ConversationState:
    return transition(current, ConversationState.PROCESSING)


def complete(current: ConversationState) -> ConversationState:
    return transition(current, ConversationState.COMPLETED)

