from __future__ import annotations

import asyncio

import pytest

from opsdeck_mcp.categories import Category, ComplianceLevel
from opsdeck_mcp.tracking import (
    OperationRegistry,
    OperationState,
    Urgency,
    classify_urgency,
    is_running_late,
)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


def test_register_and_finish_updates_loading_state() -> None:
    registry = OperationRegistry()

    op_id = registry.register("Generate content", category="general")

    assert registry.is_loading
    assert registry.total_operations == 1
    assert registry.get_operation(op_id).is_indeterminate

    registry.finish(op_id)

    assert not registry.is_loading
    assert registry.completed_operations == 1


def test_finish_and_cancel_are_idempotent() -> None:
    registry = OperationRegistry()
    first = registry.register("First")
    second = registry.register("Second")

    registry.finish(first)
    registry.finish(first)
    registry.cancel(first)
    registry.cancel(second)
    registry.cancel(second)
    registry.finish(second)

    stats = registry.get_stats()
    assert stats.completed_operations == 1
    assert stats.cancelled_operations == 1
    assert stats.active_operations == 0


def test_unknown_ids_are_ignored_without_touching_other_records() -> None:
    registry = OperationRegistry()
    op_id = registry.register("Publish to Facebook", progress=40)

    registry.update_progress("missing", 90)
    registry.finish("missing")
    registry.cancel("missing")
    registry.annotate("missing", sensitive=True)

    operation = registry.get_operation(op_id)
    assert operation.progress == 40
    assert not operation.sensitive
    assert registry.completed_operations == 0


def test_global_progress_counts_indeterminate_as_zero() -> None:
    registry = OperationRegistry()
    registry.register("Tracked", progress=100)
    registry.register("Spinner")

    assert registry.global_progress == pytest.approx(50.0)


def test_global_progress_is_zero_without_operations() -> None:
    assert OperationRegistry().global_progress == 0.0


def test_update_progress_clamps_and_relabels() -> None:
    registry = OperationRegistry()
    op_id = registry.register("Upload")

    registry.update_progress(op_id, 150, label="Upload (almost done)")
    operation = registry.get_operation(op_id)
    assert operation.progress == 100.0
    assert operation.label == "Upload (almost done)"

    registry.update_progress(op_id, -5)
    assert registry.get_operation(op_id).progress == 0.0

    registry.update_progress(op_id, "not a number")  # type: ignore[arg-type]
    assert registry.get_operation(op_id).progress == 0.0


def test_average_duration_uses_completed_operations_only() -> None:
    clock = FakeClock()
    registry = OperationRegistry(clock=clock)

    assert registry.get_stats().average_duration == 0.0

    fast = registry.register("Fast")
    slow = registry.register("Slow")
    abandoned = registry.register("Abandoned")
    clock.advance(2)
    registry.finish(fast)
    clock.advance(4)
    registry.finish(slow)
    clock.advance(100)
    registry.cancel(abandoned)

    assert registry.get_stats().average_duration == pytest.approx(4.0)


def test_colliding_caller_id_gets_fresh_id() -> None:
    registry = OperationRegistry()
    first = registry.register("One", operation_id="publish")
    second = registry.register("Two", operation_id="publish")

    assert first == "publish"
    assert second != "publish"
    assert registry.get_operation(first).label == "One"
    assert registry.get_operation(second).label == "Two"


def test_stop_all_loading_cancels_everything() -> None:
    registry = OperationRegistry()
    for label in ("a", "b", "c"):
        registry.register(label)

    registry.stop_all_loading()

    assert not registry.is_loading
    assert registry.cancelled_operations == 3
    assert registry.completed_operations == 0


def test_operations_by_category_returns_snapshots() -> None:
    registry = OperationRegistry()
    op_id = registry.register("Check AHPRA", category=Category.COMPLIANCE)
    registry.register("Fetch", category="network")

    matches = registry.get_operations_by_category("compliance")
    assert [op.id for op in matches] == [op_id]

    matches[0].label = "mutated"
    assert registry.get_operation(op_id).label == "Check AHPRA"


def test_annotate_updates_compliance_fields() -> None:
    registry = OperationRegistry()
    op_id = registry.register("Patient export")

    registry.annotate(op_id, compliance_level="critical", sensitive=True)

    operation = registry.get_operation(op_id)
    assert operation.compliance_level is ComplianceLevel.CRITICAL
    assert operation.sensitive


def test_category_starters_apply_defaults() -> None:
    registry = OperationRegistry()

    compliance = registry.get_operation(registry.start_compliance_check("TGA check"))
    data = registry.get_operation(registry.start_data_operation("Import", sensitive=True))
    auth = registry.get_operation(registry.start_auth_operation("Sign in"))
    network = registry.get_operation(registry.start_network_operation("Ping"))

    assert compliance.category is Category.COMPLIANCE
    assert compliance.compliance_level is ComplianceLevel.HIGH
    assert compliance.sensitive and compliance.timeout == 30.0
    assert data.timeout == 60.0 and data.sensitive
    assert auth.estimated_time == "5-15 seconds"
    assert network.category is Category.NETWORK


def test_track_finishes_or_cancels() -> None:
    registry = OperationRegistry()

    async def scenario() -> None:
        async with registry.track("Works"):
            assert registry.is_loading

        with pytest.raises(ValueError):
            async with registry.track("Breaks"):
                raise ValueError("boom")

    asyncio.run(scenario())

    assert registry.completed_operations == 1
    assert registry.cancelled_operations == 1
    assert not registry.is_loading


def test_listener_failures_do_not_break_mutations() -> None:
    registry = OperationRegistry()
    seen: list[int] = []

    def broken(_registry: OperationRegistry) -> None:
        raise RuntimeError("listener bug")

    registry.subscribe(broken)
    unsubscribe = registry.subscribe(lambda reg: seen.append(len(reg.operations)))

    op_id = registry.register("Anything")
    registry.finish(op_id)
    unsubscribe()
    registry.register("Unobserved")

    assert seen == [1, 0]


def test_timeout_is_advisory_only() -> None:
    clock = FakeClock()
    registry = OperationRegistry(clock=clock)
    op_id = registry.register("Slow publish", timeout=10)
    clock.advance(60)

    operation = registry.get_operation(op_id)
    assert operation.state is OperationState.ACTIVE
    assert registry.is_operation_loading(op_id)
    assert is_running_late(operation, clock())


def test_classify_urgency_thresholds() -> None:
    clock = FakeClock()
    registry = OperationRegistry(clock=clock)
    op_id = registry.register("Generate", timeout=10)
    operation = registry.get_operation(op_id)

    assert classify_urgency(operation, clock.now + 4) is Urgency.NORMAL
    assert classify_urgency(operation, clock.now + 6) is Urgency.SLOW
    assert classify_urgency(operation, clock.now + 9) is Urgency.LATE
    assert not is_running_late(operation, clock.now + 9)

    untimed = registry.get_operation(registry.register("No timeout"))
    assert classify_urgency(untimed, clock.now + 20, default_timeout=30) is Urgency.SLOW
    assert not is_running_late(untimed, clock.now + 1000)


def test_unknown_category_matches_nothing() -> None:
    registry = OperationRegistry()
    registry.register("Generate", category="general")
    registry.register("Mystery", category="not-a-category")

    assert registry.get_operations_by_category("healthcar") == []
    assert [op.label for op in registry.get_operations_by_category("general")] == [
        "Generate",
        "Mystery",
    ]
