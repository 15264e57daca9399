"""Tool registration for OpsDeck MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..categories import Category, parse_category
from ..config import OpsDeckSettings
from ..retry import RetryScheduler
from ..tracking import OperationRegistry
from ..views import dashboard_snapshot, format_time_remaining, overlay_snapshot


@dataclass(slots=True)
class ToolHandles:
    loading_status: Any
    operations_by_category: Any
    stop_all_loading: Any
    retry_status: Any
    time_until_retry: Any
    cancel_retry: Any
    cancel_all_retries: Any
    registry: OperationRegistry
    scheduler: RetryScheduler


def register_tools(
    server: FastMCP,
    *,
    registry: OperationRegistry,
    scheduler: RetryScheduler,
    settings: OpsDeckSettings,
) -> ToolHandles:
    """Register the overlay and dashboard tools on the server."""

    def _loading_status(context: Context | None = None) -> dict[str, Any]:
        """Summarize in-flight operations for the global loading overlay."""

        snapshot = overlay_snapshot(registry, settings=settings)
        _emit_log(
            context,
            "debug",
            "Loading status requested",
            extra={"active": snapshot["stats"]["active_operations"]},
        )
        return snapshot

    def _operations_by_category(
        category: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """List active operations in one category."""

        resolved = parse_category(category)
        if resolved is None:
            raise ValueError(
                f"Unknown category '{category}'. Use one of "
                f"{', '.join(item.value for item in Category)}."
            )
        operations = [op.to_dict() for op in registry.get_operations_by_category(resolved)]
        _emit_log(
            context,
            "debug",
            "Listing operations by category",
            extra={"category": resolved.value, "count": len(operations)},
        )
        return {"category": resolved.value, "operations": operations}

    def _stop_all_loading(context: Context | None = None) -> dict[str, Any]:
        """Cancel every active operation shown in the overlay."""

        active = len(registry.operations)
        registry.stop_all_loading()
        _emit_log(
            context,
            "warning",
            "Stop all loading requested",
            extra={"cancelled": active},
        )
        return {"cancelled": active, "stats": registry.get_stats().to_dict()}

    tool_loading = server.tool(
        name="loading_status",
        description=(
            "Report whether anything is loading, the global progress, per-operation "
            "urgency, and aggregate operation statistics."
        ),
    )(_loading_status)

    tool_by_category = server.tool(
        name="operations_by_category",
        description=(
            "List active operations for one category "
            f"({', '.join(item.value for item in Category)})."
        ),
    )(_operations_by_category)

    tool_stop_all = server.tool(
        name="stop_all_loading",
        description="Cancel every active operation. Underlying work is not aborted.",
        annotations={"destructiveHint": True, "idempotentHint": True},
    )(_stop_all_loading)

    def _retry_status(context: Context | None = None) -> dict[str, Any]:
        """Summarize pending retries for the retry dashboard."""

        snapshot = dashboard_snapshot(scheduler)
        _emit_log(
            context,
            "debug",
            "Retry status requested",
            extra={"active_retries": snapshot["active_retries"]},
        )
        return snapshot

    def _time_until_retry(retry_id: str, context: Context | None = None) -> dict[str, Any]:
        """Return the countdown for a pending retry."""

        remaining = scheduler.get_time_until_retry(retry_id)
        return {
            "retry_id": retry_id,
            "pending": scheduler.is_retrying(retry_id),
            "seconds": remaining,
            "countdown": format_time_remaining(remaining),
        }

    def _cancel_retry(retry_id: str, context: Context | None = None) -> dict[str, Any]:
        """Cancel one pending retry."""

        was_pending = scheduler.is_retrying(retry_id)
        scheduler.cancel_retry(retry_id)
        record = scheduler.get_retry(retry_id)
        _emit_log(
            context,
            "info",
            "Retry cancellation requested",
            extra={"retry_id": retry_id, "was_pending": was_pending},
        )
        return {
            "retry_id": retry_id,
            "cancelled": was_pending,
            "state": record.state.value if record else None,
        }

    def _cancel_all_retries(context: Context | None = None) -> dict[str, Any]:
        """Cancel every pending retry."""

        pending = scheduler.active_retries
        scheduler.cancel_all_retries()
        _emit_log(
            context,
            "warning",
            "Cancel all retries requested",
            extra={"cancelled": pending},
        )
        return {"cancelled": pending, "stats": scheduler.get_retry_stats().to_dict()}

    tool_retry_status = server.tool(
        name="retry_status",
        description="Report pending retries with countdowns, totals, success rate, and category counts.",
    )(_retry_status)

    tool_time_until = server.tool(
        name="time_until_retry",
        description="Seconds until the next attempt of a retry (0 means retrying now).",
    )(_time_until_retry)

    tool_cancel = server.tool(
        name="cancel_retry",
        description="Cancel a pending retry. Results of an in-flight attempt are discarded.",
        annotations={"destructiveHint": True, "idempotentHint": True},
    )(_cancel_retry)

    tool_cancel_all = server.tool(
        name="cancel_all_retries",
        description="Cancel every pending retry.",
    )(_cancel_all_retries)

    return ToolHandles(
        loading_status=tool_loading,
        operations_by_category=tool_by_category,
        stop_all_loading=tool_stop_all,
        retry_status=tool_retry_status,
        time_until_retry=tool_time_until,
        cancel_retry=tool_cancel,
        cancel_all_retries=tool_cancel_all,
        registry=registry,
        scheduler=scheduler,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
