"""Data models for retryable operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from ..categories import Category

if TYPE_CHECKING:
    from .policy import RetryPolicy


class RetryState(str, Enum):
    WAITING = "waiting"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {RetryState.SUCCEEDED, RetryState.FAILED, RetryState.CANCELLED}


class WorkError(RuntimeError):
    """Failure raised by retried work that carries a classification."""

    def __init__(self, message: str, *, code: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


@dataclass(frozen=True, slots=True)
class ErrorDescriptor:
    """Serializable summary of the most recent attempt failure."""

    code: str
    message: str
    status: int | None = None
    error_type: str | None = None
    classified: bool = False

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorDescriptor":
        code = getattr(exc, "code", None)
        status = getattr(exc, "status", None)
        if not isinstance(status, int):
            status = None
        return cls(
            code=str(code) if code else type(exc).__name__,
            message=str(exc) or type(exc).__name__,
            status=status,
            error_type=type(exc).__name__,
            classified=bool(code) or status is not None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "status": self.status,
            "error_type": self.error_type,
            "classified": self.classified,
        }


@dataclass(slots=True)
class RetryableOperation:
    """A unit of work wrapped with automatic re-attempt policy."""

    id: str
    label: str
    category: Category
    max_attempts: int
    work: Callable[[], Awaitable[Any]] = field(repr=False)
    policy: "RetryPolicy" = field(repr=False)
    created_at: float = 0.0
    attempts: int = 0
    state: RetryState = RetryState.EXECUTING
    last_error: ErrorDescriptor | None = None
    next_retry_at: float | None = None
    finished_at: float | None = None
    result: Any = field(default=None, repr=False)
    delays: list[float] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "category": self.category.value,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "state": self.state.value,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "next_retry_at": self.next_retry_at,
            "created_at": self.created_at,
            "finished_at": self.finished_at,
        }


@dataclass(slots=True)
class RetryStats:
    success_rate: float
    average_attempts: float
    category_stats: dict[str, int]
    active_retries: int
    total_retries: int
    successful_retries: int
    failed_retries: int
    cancelled_retries: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_rate": self.success_rate,
            "average_attempts": self.average_attempts,
            "category_stats": dict(self.category_stats),
            "active_retries": self.active_retries,
            "total_retries": self.total_retries,
            "successful_retries": self.successful_retries,
            "failed_retries": self.failed_retries,
            "cancelled_retries": self.cancelled_retries,
        }


class RetryError(RuntimeError):
    """Base class for outcomes surfaced by the awaiting retry API."""

    def __init__(self, message: str, record: RetryableOperation) -> None:
        super().__init__(message)
        self.record = record


class RetryExhaustedError(RetryError):
    """Raised when a retried operation ends in the failed state."""


class RetryCancelledError(RetryError):
    """Raised when a retried operation is cancelled before it resolves."""


__all__ = [
    "ErrorDescriptor",
    "RetryCancelledError",
    "RetryError",
    "RetryExhaustedError",
    "RetryState",
    "RetryStats",
    "RetryableOperation",
    "WorkError",
]
