from typing import Any, Optional


class WrapBotError(Exception):
    """Base class for recoverable conversation errors."""

    code = "wrapbot_error"


class InvalidStateError(WrapBotError):
    """Event arrived while the session was in a state that does not accept it."""

    code = "invalid_state"

    def __init__(self, expected: Any, actual: Any):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected state {expected.value}, got {actual.value}")


class QuotaExceededError(WrapBotError):
    code = "quota_exceeded"

    def __init__(self, identity: str, limit: int):
        self.identity = identity
        self.limit = limit
        super().__init__(f"Usage limit {limit} reached for {identity}")


class LockContentionError(WrapBotError):
    code = "lock_contention"

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"Processing already in flight for {identity}")


class ProcessorError(WrapBotError):
    """Timeout, transport error or unusable response from the image processor."""

    code = "processor_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class WatermarkError(WrapBotError):
    code = "watermark_error"
