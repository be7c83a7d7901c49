"""Error kinds and result values returned by core operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Category of a failed operation."""

    NOT_FOUND = "NOT_FOUND"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    CONFLICT = "CONFLICT"
    BAD_INPUT = "BAD_INPUT"


class ConstraintViolation(Exception):
    """Raised by a store when a uniqueness constraint rejects a write."""

    pass


@dataclass(frozen=True)
class ServiceError:
    """A failed operation.

    Attributes:
        kind: Error category, used by the HTTP layer to pick a status code
        message: Message safe to show to the caller
        detail: Identifiers and context for the logs
    """

    kind: ErrorKind
    message: str
    detail: str = ""


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a core operation: either a value or a ServiceError."""

    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, detail: str = "") -> Result[T]:
        return cls(error=ServiceError(kind, message, detail))

    @classmethod
    def not_found(cls, message: str, detail: str = "") -> Result[T]:
        return cls.failure(ErrorKind.NOT_FOUND, message, detail)

    @classmethod
    def not_authorized(cls, message: str, detail: str = "") -> Result[T]:
        return cls.failure(ErrorKind.NOT_AUTHORIZED, message, detail)

    @classmethod
    def conflict(cls, message: str, detail: str = "") -> Result[T]:
        return cls.failure(ErrorKind.CONFLICT, message, detail)

    @classmethod
    def bad_input(cls, message: str, detail: str = "") -> Result[T]:
        return cls.failure(ErrorKind.BAD_INPUT, message, detail)

    def propagate(self) -> Result:
        """Re-wrap this failure for a caller with a different value type."""
        return Result(error=self.error)
