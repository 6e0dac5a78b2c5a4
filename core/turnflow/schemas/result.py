"""Explicit success/failure outcome returned by every service operation."""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Outcome of an operation.

    Services never let exceptions escape; they return ``Result.fail(...)``
    with a message the calling layer can show to the user.
    """

    success: bool
    value: T | None = None
    error: str = ""

    @classmethod
    def ok(cls, value: T | None = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str) -> "Result[T]":
        return cls(success=False, error=error)

    @property
    def is_failure(self) -> bool:
        return not self.success

    def unwrap(self) -> T:
        """Return the value, raising ValueError if this is a failure."""
        if not self.success:
            raise ValueError(self.error or "Result is a failure")
        return self.value  # type: ignore[return-value]
