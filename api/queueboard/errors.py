"""Error taxonomy and the result pair returned by engine operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class QueueError(Exception):
    """Base class for errors surfaced by queue operations.

    ``code`` is the machine readable identifier placed in the error envelope
    and ``status`` the HTTP status used by the routers.
    """

    code = "QUEUE_ERROR"
    status = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"{type(self).__name__}({self.message!r})"


class ValidationError(QueueError):
    """Malformed input such as an empty person name."""

    code = "VALIDATION"
    status = 422


class NotFoundError(QueueError):
    """A referenced queue, token or service type is absent or not eligible."""

    code = "NOT_FOUND"
    status = 404


class ConflictError(QueueError):
    """The request conflicts with the current queue state."""

    code = "CONFLICT"
    status = 409


class BackendError(QueueError):
    """Opaque passthrough for storage or transport failures."""

    code = "BACKEND"
    status = 502


class OperationTimeout(QueueError):
    """The operation did not complete within the configured bound."""

    code = "TIMEOUT"
    status = 504


@dataclass
class Result(Generic[T]):
    """Outcome of an engine operation: either ``data`` or ``error`` is set."""

    data: Optional[T] = None
    error: Optional[QueueError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T) -> "Result[T]":
        return cls(data=data)

    @classmethod
    def failure(cls, error: QueueError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return ``data`` or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.data  # type: ignore[return-value]


__all__ = [
    "BackendError",
    "ConflictError",
    "NotFoundError",
    "OperationTimeout",
    "QueueError",
    "Result",
    "ValidationError",
]
