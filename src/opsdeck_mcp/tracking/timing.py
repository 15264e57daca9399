"""Advisory timeout classification.

Timeouts never cancel anything. They only tell the overlay that an operation
is taking longer than expected.
"""

from __future__ import annotations

from enum import Enum

from .models import Operation


class Urgency(str, Enum):
    NORMAL = "normal"
    SLOW = "slow"
    LATE = "late"


def elapsed(operation: Operation, now: float) -> float:
    """Seconds since the operation started, never negative."""

    return max(0.0, now - operation.start_time)


def is_running_late(operation: Operation, now: float) -> bool:
    if operation.timeout is None:
        return False
    return elapsed(operation, now) > operation.timeout


def classify_urgency(
    operation: Operation,
    now: float,
    *,
    default_timeout: float = 30.0,
    slow_ratio: float = 0.5,
    late_ratio: float = 0.8,
) -> Urgency:
    """Bucket an operation by how much of its timeout has been used."""

    timeout = operation.timeout or default_timeout
    spent = elapsed(operation, now)
    if spent > timeout * late_ratio:
        return Urgency.LATE
    if spent > timeout * slow_ratio:
        return Urgency.SLOW
    return Urgency.NORMAL


__all__ = ["Urgency", "classify_urgency", "elapsed", "is_running_late"]
