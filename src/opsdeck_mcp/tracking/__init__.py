"""Operation registry and advisory timing helpers."""

from .models import LoadingStats, Operation, OperationState
from .registry import OperationRegistry
from .timing import Urgency, classify_urgency, elapsed, is_running_late

__all__ = [
    "LoadingStats",
    "Operation",
    "OperationRegistry",
    "OperationState",
    "Urgency",
    "classify_urgency",
    "elapsed",
    "is_running_late",
]
