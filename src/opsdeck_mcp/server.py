"""FastMCP server bootstrap for OpsDeck."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import FastMCP

from . import __version__
from .config import OpsDeckSettings, get_settings
from .policies import PolicyLoadError, load_policy_book
from .retry import RetryPolicyBook, RetryScheduler
from .tools import register_tools
from .tracking import OperationRegistry
from .views import dashboard_snapshot, overlay_snapshot


def configure_logging(level: str) -> None:
    """Configure root logging for the OpsDeck server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[OpsDeckSettings] = None,
    registry: OperationRegistry | None = None,
    scheduler: RetryScheduler | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server around one shared registry and scheduler."""

    settings = settings or get_settings()

    policy_metadata: dict[str, Any] = {
        "paths": [str(path) for path in settings.policy_paths],
        "error": None,
    }

    registry = registry or OperationRegistry()
    if scheduler is None:
        try:
            policies = load_policy_book(settings)
        except PolicyLoadError as exc:
            policy_metadata["error"] = str(exc)
            logging.getLogger(__name__).error(
                "Retry policy overrides rejected; using defaults",
                extra={"error": str(exc)},
            )
            policies = RetryPolicyBook(jitter_fraction=settings.jitter_fraction)
        scheduler = RetryScheduler(
            policies=policies,
            registry=registry,
            history_limit=settings.retry_history_limit,
        )

    server = FastMCP(
        name="OpsDeck MCP",
        version=__version__,
        instructions=(
            "OpsDeck tracks in-flight asynchronous operations and their automatic "
            "retries. Use the provided tools to observe loading state, inspect "
            "pending retries, and cancel work that is no longer wanted."
        ),
    )

    handles = register_tools(
        server,
        registry=registry,
        scheduler=scheduler,
        settings=settings,
    )

    def loading_resource() -> str:
        """Return the loading overlay snapshot as JSON."""

        return json.dumps(overlay_snapshot(registry, settings=settings))

    def retries_resource() -> str:
        """Return the retry dashboard snapshot as JSON."""

        return json.dumps(dashboard_snapshot(scheduler))

    def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        loading = registry.get_stats()
        retries = scheduler.get_retry_stats()
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "policies": {
                **policy_metadata,
                "effective": scheduler.policies.describe(),
            },
            "loading": {
                "is_loading": registry.is_loading,
                "active": loading.active_operations,
                "completed": loading.completed_operations,
                "cancelled": loading.cancelled_operations,
                "average_duration": loading.average_duration,
            },
            "retries": {
                "active": retries.active_retries,
                "total": retries.total_retries,
                "success_rate": retries.success_rate,
                "by_category": retries.category_stats,
            },
        }
        return json.dumps(payload)

    server.resource(
        "resource://opsdeck/loading",
        name="opsdeck_loading",
        description="Global loading overlay state: active operations, progress, and urgency.",
        mime_type="application/json",
        tags={"loading", "operations"},
    )(loading_resource)

    server.resource(
        "resource://opsdeck/retries",
        name="opsdeck_retries",
        description="Retry dashboard state: pending retries, countdowns, and outcome statistics.",
        mime_type="application/json",
        tags={"retry"},
    )(retries_resource)

    server.resource(
        "resource://opsdeck/status",
        name="opsdeck_status",
        description="Provides the current runtime status for the OpsDeck MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )(status_resource)

    setattr(server, "registry", registry)
    setattr(server, "scheduler", scheduler)
    setattr(server, "policy_metadata", policy_metadata)
    setattr(server, "tool_handles", handles)
    setattr(
        server,
        "resource_handlers",
        {
            "loading": loading_resource,
            "retries": retries_resource,
            "status": status_resource,
        },
    )
    return server


def main() -> None:
    """Entry point for running the OpsDeck MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching OpsDeck MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "policy_error": getattr(server, "policy_metadata", {}).get("error"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
