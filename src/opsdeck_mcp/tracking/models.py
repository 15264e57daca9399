"""Data models for tracked operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..categories import Category, ComplianceLevel


class OperationState(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class Operation:
    """A unit of in-flight asynchronous work surfaced in the loading overlay."""

    id: str
    label: str
    category: Category
    start_time: float
    compliance_level: ComplianceLevel | None = None
    sensitive: bool = False
    progress: float | None = None
    timeout: float | None = None
    estimated_time: str | None = None
    context: str | None = None
    state: OperationState = OperationState.ACTIVE
    finish_time: float | None = None

    @property
    def is_indeterminate(self) -> bool:
        return self.progress is None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "label": self.label,
            "category": self.category.value,
            "compliance_level": self.compliance_level.value if self.compliance_level else None,
            "sensitive": self.sensitive,
            "progress": self.progress,
            "start_time": self.start_time,
            "timeout": self.timeout,
            "estimated_time": self.estimated_time,
            "context": self.context,
            "state": self.state.value,
        }


@dataclass(slots=True)
class LoadingStats:
    active_operations: int
    completed_operations: int
    cancelled_operations: int
    total_operations: int
    average_duration: float
    global_progress: float
    category_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "active_operations": self.active_operations,
            "completed_operations": self.completed_operations,
            "cancelled_operations": self.cancelled_operations,
            "total_operations": self.total_operations,
            "average_duration": self.average_duration,
            "global_progress": self.global_progress,
            "category_counts": dict(self.category_counts),
        }


__all__ = ["LoadingStats", "Operation", "OperationState"]
