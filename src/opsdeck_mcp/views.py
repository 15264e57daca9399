"""Read models for the loading overlay and the retry dashboard."""

from __future__ import annotations

import math
from typing import Any, Iterable

from .categories import Category, ComplianceLevel
from .config import OpsDeckSettings
from .retry import RetryScheduler
from .tracking import Operation, OperationRegistry, classify_urgency, elapsed, is_running_late


def format_time_remaining(seconds: float) -> str:
    if seconds <= 0:
        return "Retrying now..."
    whole = math.ceil(seconds)
    if whole < 60:
        return f"{whole}s"
    minutes, remainder = divmod(whole, 60)
    return f"{minutes}m {remainder}s"


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    return f"{seconds:.1f}s"


def priority_operations(operations: Iterable[Operation], limit: int = 3) -> list[Operation]:
    """Critical compliance work first, then healthcare, then compliance."""

    items = list(operations)
    ordered = (
        [op for op in items if op.compliance_level is ComplianceLevel.CRITICAL]
        + [op for op in items if op.category is Category.HEALTHCARE]
        + [op for op in items if op.category is Category.COMPLIANCE]
    )
    seen: set[str] = set()
    picked: list[Operation] = []
    for op in ordered:
        if op.id in seen:
            continue
        seen.add(op.id)
        picked.append(op)
        if len(picked) >= limit:
            break
    return picked


def overlay_snapshot(
    registry: OperationRegistry,
    *,
    now: float | None = None,
    settings: OpsDeckSettings | None = None,
) -> dict[str, Any]:
    """Everything the global loading overlay renders, as plain data."""

    current = registry.now() if now is None else now
    default_timeout = settings.default_timeout if settings else 30.0
    slow_ratio = settings.slow_ratio if settings else 0.5
    late_ratio = settings.late_ratio if settings else 0.8

    operations = list(registry.operations.values())

    def _entry(op: Operation) -> dict[str, Any]:
        spent = elapsed(op, current)
        payload = op.to_dict()
        payload.update(
            {
                "elapsed": spent,
                "elapsed_text": format_duration(spent),
                "running_late": is_running_late(op, current),
                "urgency": classify_urgency(
                    op,
                    current,
                    default_timeout=default_timeout,
                    slow_ratio=slow_ratio,
                    late_ratio=late_ratio,
                ).value,
            }
        )
        return payload

    return {
        "is_loading": registry.is_loading,
        "global_progress": registry.global_progress,
        "total_operations": registry.total_operations,
        "completed_operations": registry.completed_operations,
        "stats": registry.get_stats().to_dict(),
        "operations": [_entry(op) for op in operations],
        "priority_operations": [op.id for op in priority_operations(operations)],
    }


def dashboard_snapshot(scheduler: RetryScheduler, *, now: float | None = None) -> dict[str, Any]:
    """Everything the retry dashboard renders, as plain data."""

    pending = []
    for record in scheduler.get_pending_retries():
        if now is None:
            remaining = scheduler.get_time_until_retry(record.id)
        elif record.next_retry_at is None:
            remaining = 0.0
        else:
            remaining = max(0.0, record.next_retry_at - now)
        payload = record.to_dict()
        payload.update(
            {
                "time_until_retry": remaining,
                "countdown": format_time_remaining(remaining),
                "attempt_progress": (record.attempts / record.max_attempts) * 100,
            }
        )
        pending.append(payload)

    return {
        "active_retries": scheduler.active_retries,
        "total_retries": scheduler.total_retries,
        "successful_retries": scheduler.successful_retries,
        "failed_retries": scheduler.failed_retries,
        "cancelled_retries": scheduler.cancelled_retries,
        "stats": scheduler.get_retry_stats().to_dict(),
        "pending": pending,
    }


__all__ = [
    "dashboard_snapshot",
    "format_duration",
    "format_time_remaining",
    "overlay_snapshot",
    "priority_operations",
]
