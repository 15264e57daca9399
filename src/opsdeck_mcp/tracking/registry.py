"""In-memory registry of in-flight operations."""

from __future__ import annotations

import logging
import math
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncIterator, Callable
from uuid import uuid4

from ..categories import (
    Category,
    ComplianceLevel,
    ListenerSet,
    coerce_category,
    coerce_compliance_level,
    count_by_category,
    mean,
    parse_category,
)
from .models import LoadingStats, Operation, OperationState

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _clamp_progress(value: Any) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return 0.0
    return min(max(number, 0.0), 100.0)


class OperationRegistry:
    """Bookkeeping table for operations shown in the global loading overlay.

    The registry never raises from its mutators. Unknown ids are ignored
    because updates routinely race with cleanup, and nothing here ever
    expires an operation on its own: ``timeout`` is advisory only.
    """

    def __init__(self, *, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time
        self._active: dict[str, Operation] = {}
        self._listeners = ListenerSet()
        self._registered = 0
        self._completed = 0
        self._cancelled = 0
        self._duration_total = 0.0

    # -- lifecycle -----------------------------------------------------

    def register(
        self,
        label: str,
        *,
        category: Category | str = Category.GENERAL,
        compliance_level: ComplianceLevel | str | None = None,
        sensitive: bool = False,
        timeout: float | None = None,
        estimated_time: str | None = None,
        progress: float | None = None,
        context: str | None = None,
        operation_id: str | None = None,
    ) -> str:
        """Add an active operation and return the id to use for it."""

        op_id = operation_id or self._new_id()
        if op_id in self._active:
            fresh = self._new_id()
            logger.warning(
                "Operation id already active; issuing a fresh id",
                extra={"requested_id": op_id, "operation_id": fresh},
            )
            op_id = fresh

        operation = Operation(
            id=op_id,
            label=label,
            category=coerce_category(category),
            start_time=self._clock(),
            compliance_level=coerce_compliance_level(compliance_level),
            sensitive=bool(sensitive),
            progress=_clamp_progress(progress),
            timeout=timeout,
            estimated_time=estimated_time,
            context=context,
        )
        self._active[op_id] = operation
        self._registered += 1
        logger.debug(
            "Operation registered",
            extra={"operation_id": op_id, "label": label, "category": operation.category.value},
        )
        self._listeners.notify(self)
        return op_id

    def update_progress(self, operation_id: str, progress: float, label: str | None = None) -> None:
        operation = self._active.get(operation_id)
        if operation is None:
            logger.debug("Progress update for unknown operation", extra={"operation_id": operation_id})
            return
        clamped = _clamp_progress(progress)
        if clamped is None:
            logger.debug(
                "Ignoring non-numeric progress",
                extra={"operation_id": operation_id, "progress": progress},
            )
            return
        operation.progress = clamped
        if label is not None:
            operation.label = label
        self._listeners.notify(self)

    def annotate(
        self,
        operation_id: str,
        *,
        compliance_level: ComplianceLevel | str | None = _UNSET,
        sensitive: bool = _UNSET,
    ) -> None:
        """Update the compliance annotations of an active operation."""

        operation = self._active.get(operation_id)
        if operation is None:
            logger.debug("Annotation for unknown operation", extra={"operation_id": operation_id})
            return
        if compliance_level is not _UNSET:
            operation.compliance_level = coerce_compliance_level(compliance_level)
        if sensitive is not _UNSET:
            operation.sensitive = bool(sensitive)
        self._listeners.notify(self)

    def finish(self, operation_id: str) -> None:
        operation = self._active.pop(operation_id, None)
        if operation is None:
            return
        finished_at = self._clock()
        operation.state = OperationState.COMPLETED
        operation.finish_time = finished_at
        self._completed += 1
        self._duration_total += max(0.0, finished_at - operation.start_time)
        logger.debug(
            "Operation finished",
            extra={
                "operation_id": operation_id,
                "duration": finished_at - operation.start_time,
            },
        )
        self._listeners.notify(self)

    def cancel(self, operation_id: str) -> None:
        operation = self._active.pop(operation_id, None)
        if operation is None:
            return
        operation.state = OperationState.CANCELLED
        operation.finish_time = self._clock()
        self._cancelled += 1
        logger.debug("Operation cancelled", extra={"operation_id": operation_id})
        self._listeners.notify(self)

    def stop_all_loading(self) -> None:
        """Cancel every active operation."""

        if not self._active:
            return
        now = self._clock()
        count = len(self._active)
        for operation in self._active.values():
            operation.state = OperationState.CANCELLED
            operation.finish_time = now
        self._cancelled += count
        self._active.clear()
        logger.info("Stopped all loading operations", extra={"cancelled": count})
        self._listeners.notify(self)

    @asynccontextmanager
    async def track(self, label: str, **options: Any) -> AsyncIterator[str]:
        """Register around a block: finish on success, cancel on error."""

        op_id = self.register(label, **options)
        try:
            yield op_id
        except BaseException:
            self.cancel(op_id)
            raise
        else:
            self.finish(op_id)

    # -- category starters ---------------------------------------------

    def start_healthcare_operation(self, label: str, **options: Any) -> str:
        options["category"] = Category.HEALTHCARE
        return self.register(label, **options)

    def start_compliance_check(
        self,
        label: str,
        compliance_level: ComplianceLevel | str = ComplianceLevel.HIGH,
        *,
        operation_id: str | None = None,
    ) -> str:
        return self.register(
            label,
            category=Category.COMPLIANCE,
            compliance_level=compliance_level,
            sensitive=True,
            timeout=30.0,
            estimated_time="10-30 seconds",
            operation_id=operation_id,
        )

    def start_data_operation(
        self, label: str, sensitive: bool = False, *, operation_id: str | None = None
    ) -> str:
        return self.register(
            label,
            category=Category.DATA,
            sensitive=sensitive,
            timeout=60.0,
            estimated_time="30-60 seconds",
            operation_id=operation_id,
        )

    def start_auth_operation(self, label: str, *, operation_id: str | None = None) -> str:
        return self.register(
            label,
            category=Category.AUTH,
            timeout=15.0,
            estimated_time="5-15 seconds",
            operation_id=operation_id,
        )

    def start_network_operation(self, label: str, *, operation_id: str | None = None) -> str:
        return self.register(
            label,
            category=Category.NETWORK,
            timeout=30.0,
            estimated_time="5-30 seconds",
            operation_id=operation_id,
        )

    # -- reads ----------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return bool(self._active)

    @property
    def operations(self) -> dict[str, Operation]:
        return {op_id: replace(op) for op_id, op in self._active.items()}

    @property
    def global_progress(self) -> float:
        """Mean progress of active operations; indeterminate ones count as 0."""

        return mean(op.progress or 0.0 for op in self._active.values())

    @property
    def total_operations(self) -> int:
        return self._registered

    @property
    def completed_operations(self) -> int:
        return self._completed

    @property
    def cancelled_operations(self) -> int:
        return self._cancelled

    def now(self) -> float:
        return self._clock()

    def get_operation(self, operation_id: str) -> Operation | None:
        operation = self._active.get(operation_id)
        return replace(operation) if operation is not None else None

    def is_operation_loading(self, operation_id: str) -> bool:
        return operation_id in self._active

    def get_operations_by_category(self, category: Category | str) -> list[Operation]:
        wanted = parse_category(category)
        if wanted is None:
            return []
        return [replace(op) for op in self._active.values() if op.category is wanted]

    def get_stats(self) -> LoadingStats:
        average = self._duration_total / self._completed if self._completed else 0.0
        return LoadingStats(
            active_operations=len(self._active),
            completed_operations=self._completed,
            cancelled_operations=self._cancelled,
            total_operations=self._registered,
            average_duration=average,
            global_progress=self.global_progress,
            category_counts=count_by_category(self._active.values()),
        )

    def subscribe(self, listener: Callable[["OperationRegistry"], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    @staticmethod
    def _new_id() -> str:
        return f"op-{uuid4().hex[:12]}"


__all__ = ["OperationRegistry"]
