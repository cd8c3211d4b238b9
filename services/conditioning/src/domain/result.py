from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a repository call: a value or an error message, never both.

    Repositories return these instead of raising so that callers decide which
    failures are fatal.
    """

    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: str) -> "Result[T]":
        return cls(error=error or "unknown error")

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        if self.error is not None:
            raise ValueError(f"unwrap() on failed result: {self.error}")
        return self.value  # type: ignore[return-value]
