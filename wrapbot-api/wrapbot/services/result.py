from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    degraded: bool = False

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    @staticmethod
    def degrade(value: T, error: str, code: str = "degraded") -> "Result[T]":
        """Soft failure: the step failed but a usable fallback value is carried."""
        return Result(ok=True, value=value, error=error, error_code=code, degraded=True)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
