from __future__ import annotations

import asyncio

import pytest

from opsdeck_mcp.config import OpsDeckSettings
from opsdeck_mcp.retry import ConstantBackoff, RetryScheduler
from opsdeck_mcp.tools import register_tools
from opsdeck_mcp.tracking import OperationRegistry


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict]] = []

    def _record(self, level):
        def log(message, extra=None):
            self.records.append((level, message, extra or {}))

        return log

    def __getattr__(self, level):
        return self._record(level)


class StubContext:
    def __init__(self) -> None:
        self.logger = StubLogger()


def build(registry: OperationRegistry | None = None, scheduler: RetryScheduler | None = None):
    server = StubServer()
    registry = registry or OperationRegistry()
    scheduler = scheduler or RetryScheduler(registry=registry)
    handles = register_tools(
        server,
        registry=registry,
        scheduler=scheduler,
        settings=OpsDeckSettings(),
    )
    return server, handles


def test_register_tools_exposes_expected_names() -> None:
    server, handles = build()

    assert set(server._tools) == {
        "loading_status",
        "operations_by_category",
        "stop_all_loading",
        "retry_status",
        "time_until_retry",
        "cancel_retry",
        "cancel_all_retries",
    }
    assert handles.cancel_retry.name == "cancel_retry"


def test_loading_tools_report_and_stop() -> None:
    registry = OperationRegistry()
    registry.register("Generate blog", category="general", progress=20)
    registry.start_compliance_check("AHPRA scan")
    _, handles = build(registry=registry)
    context = StubContext()

    status = handles.loading_status.fn(context=context)
    assert status["is_loading"]
    assert status["stats"]["active_operations"] == 2
    assert context.logger.records[0][1] == "Loading status requested"

    by_category = handles.operations_by_category.fn("Compliance")
    assert by_category["category"] == "compliance"
    assert [op["label"] for op in by_category["operations"]] == ["AHPRA scan"]

    stopped = handles.stop_all_loading.fn(context=context)
    assert stopped["cancelled"] == 2
    assert not registry.is_loading
    assert context.logger.records[-1][0] == "warning"


def test_retry_tools_cancel_pending_work() -> None:
    registry = OperationRegistry()

    async def scenario():
        scheduler = RetryScheduler(registry=registry)
        _, handles = build(registry=registry, scheduler=scheduler)

        async def work():
            raise ConnectionError("offline")

        first = scheduler.schedule_retry(
            work, label="Post to Facebook", category="network", backoff=ConstantBackoff(60.0)
        )
        second = scheduler.schedule_retry(
            work, label="Post to LinkedIn", category="network", backoff=ConstantBackoff(60.0)
        )
        for _ in range(3):
            await asyncio.sleep(0)

        status = handles.retry_status.fn()
        countdown = handles.time_until_retry.fn(first)
        cancelled = handles.cancel_retry.fn(first)
        repeated = handles.cancel_retry.fn(first)
        remaining = handles.cancel_all_retries.fn()
        return second, status, countdown, cancelled, repeated, remaining

    second, status, countdown, cancelled, repeated, remaining = asyncio.run(scenario())

    assert status["active_retries"] == 2
    assert status["stats"]["category_stats"] == {"network": 2}
    assert countdown["pending"]
    assert 0 < countdown["seconds"] <= 60
    assert cancelled == {"retry_id": cancelled["retry_id"], "cancelled": True, "state": "cancelled"}
    assert repeated["cancelled"] is False
    assert remaining["cancelled"] == 1
    assert remaining["stats"]["cancelled_retries"] == 2
    assert remaining["stats"]["successful_retries"] == 0
    assert not registry.is_loading


def test_unknown_retry_id_is_harmless() -> None:
    _, handles = build()

    result = handles.cancel_retry.fn("retry-missing")
    countdown = handles.time_until_retry.fn("retry-missing")

    assert result == {"retry_id": "retry-missing", "cancelled": False, "state": None}
    assert countdown["countdown"] == "Retrying now..."


def test_operations_by_category_rejects_unknown_category() -> None:
    registry = OperationRegistry()
    registry.register("Generate", category="general")
    _, handles = build(registry=registry)

    with pytest.raises(ValueError, match="Unknown category 'healthcar'"):
        handles.operations_by_category.fn("healthcar")
