"""Asyncio retry scheduler."""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable
from uuid import uuid4

from ..categories import Category, ListenerSet, coerce_category, count_by_category
from ..tracking import OperationRegistry
from .backoff import BackoffStrategy
from .models import (
    ErrorDescriptor,
    RetryableOperation,
    RetryCancelledError,
    RetryExhaustedError,
    RetryState,
    RetryStats,
)
from .policy import RetryPolicy, RetryPolicyBook

logger = logging.getLogger(__name__)

RetryCallback = Callable[[RetryableOperation], None]


@dataclass(slots=True)
class _Hooks:
    on_complete: RetryCallback | None = None
    on_retry: RetryCallback | None = None


class RetryScheduler:
    """Re-invokes failing work with backoff and keeps outcome statistics.

    Bookkeeping happens synchronously before and after each ``await`` on the
    work, so every transition is atomic with respect to the event loop.
    Errors raised by the work are recorded on the record and never propagate
    to the caller of :meth:`schedule_retry`.

    Cancellation stops observing and stops scheduling. An attempt that is
    already in flight keeps running unless the policy sets
    ``abort_in_flight``, and whatever it returns afterwards is discarded.
    """

    def __init__(
        self,
        *,
        policies: RetryPolicyBook | None = None,
        registry: OperationRegistry | None = None,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
        history_limit: int = 100,
    ) -> None:
        self._policies = policies or RetryPolicyBook()
        self._registry = registry
        self._clock = clock or time.time
        self._rng = rng or random.Random()
        self._listeners = ListenerSet()

        self._pending: dict[str, RetryableOperation] = {}
        self._history: deque[RetryableOperation] = deque(maxlen=history_limit)
        self._hooks: dict[str, _Hooks] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._attempt_ops: dict[str, str] = {}
        self._waiters: dict[str, list[asyncio.Future[RetryableOperation]]] = {}

        self._total = 0
        self._successful = 0
        self._failed = 0
        self._cancelled = 0
        self._terminal_attempts = 0
        self._terminal_count = 0

    @property
    def policies(self) -> RetryPolicyBook:
        return self._policies

    # -- scheduling -----------------------------------------------------

    def schedule_retry(
        self,
        work: Callable[[], Awaitable[Any]],
        *,
        label: str,
        category: Category | str = Category.GENERAL,
        max_attempts: int | None = None,
        backoff: BackoffStrategy | None = None,
        policy: RetryPolicy | None = None,
        priority: str | None = None,
        sensitive: bool = False,
        on_complete: RetryCallback | None = None,
        on_retry: RetryCallback | None = None,
    ) -> str:
        """Start attempt 1 immediately and return the generated retry id.

        Without an explicit ``policy`` the category policy is looked up with
        ``priority`` and ``sensitive`` applied. Must be called from code
        running inside an asyncio event loop.
        """

        asyncio.get_running_loop()
        resolved = coerce_category(category)
        if policy is None:
            policy = self._policies.policy_for(resolved, priority=priority, sensitive=sensitive)
        effective = policy.with_overrides(max_attempts=max_attempts, backoff=backoff)

        retry_id = f"retry-{uuid4().hex[:12]}"
        record = RetryableOperation(
            id=retry_id,
            label=label,
            category=resolved,
            max_attempts=effective.max_attempts,
            work=work,
            policy=effective,
            created_at=self._clock(),
        )
        self._pending[retry_id] = record
        self._hooks[retry_id] = _Hooks(on_complete=on_complete, on_retry=on_retry)
        self._total += 1
        logger.info(
            "Retry scheduled",
            extra={
                "retry_id": retry_id,
                "label": label,
                "category": resolved.value,
                "max_attempts": effective.max_attempts,
            },
        )
        self._launch(record)
        return retry_id

    async def run_with_retry(self, work: Callable[[], Awaitable[Any]], **options: Any) -> Any:
        """Schedule ``work`` and wait for its outcome.

        Returns the work's result, or raises :class:`RetryExhaustedError` /
        :class:`RetryCancelledError` carrying the terminal record.
        """

        retry_id = self.schedule_retry(work, **options)
        record = await self.wait_for(retry_id)
        if record.state is RetryState.SUCCEEDED:
            return record.result
        if record.state is RetryState.CANCELLED:
            raise RetryCancelledError(f"{record.label} was cancelled", record)
        raise RetryExhaustedError(
            f"{record.label} failed after {record.attempts} attempt(s)", record
        )

    async def wait_for(self, retry_id: str) -> RetryableOperation:
        """Wait until the retry reaches a terminal state and return it."""

        record = self.get_retry(retry_id)
        if record is None:
            raise KeyError(retry_id)
        if record.is_terminal:
            return record
        future: asyncio.Future[RetryableOperation] = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(retry_id, []).append(future)
        return await future

    def _launch(self, record: RetryableOperation) -> None:
        self._timers.pop(record.id, None)
        if self._pending.get(record.id) is not record:
            return

        record.attempts += 1
        record.state = RetryState.EXECUTING
        record.next_retry_at = None
        self._surface_attempt(record)

        task = asyncio.get_running_loop().create_task(self._run_attempt(record, record.attempts))
        self._tasks[record.id] = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        self._listeners.notify(self)

    async def _run_attempt(self, record: RetryableOperation, attempt: int) -> None:
        try:
            outcome = record.work()
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except asyncio.CancelledError:
            if self._is_current(record, attempt):
                self.cancel_retry(record.id)
                raise
            return
        except Exception as exc:
            if not self._is_current(record, attempt):
                self._discard_late(record, attempt, "failure")
                return
            self._attempt_failed(record, exc)
        else:
            if not self._is_current(record, attempt):
                self._discard_late(record, attempt, "success")
                return
            self._attempt_succeeded(record, outcome)

    def _is_current(self, record: RetryableOperation, attempt: int) -> bool:
        return (
            self._pending.get(record.id) is record
            and record.state is RetryState.EXECUTING
            and record.attempts == attempt
        )

    def _discard_late(self, record: RetryableOperation, attempt: int, outcome: str) -> None:
        logger.debug(
            "Discarding late attempt result",
            extra={"retry_id": record.id, "attempt": attempt, "outcome": outcome},
        )

    def _attempt_succeeded(self, record: RetryableOperation, result: Any) -> None:
        self._tasks.pop(record.id, None)
        record.result = result
        self._close_attempt(record, succeeded=True)
        logger.info(
            "Retry succeeded",
            extra={"retry_id": record.id, "label": record.label, "attempts": record.attempts},
        )
        self._finalize(record, RetryState.SUCCEEDED)

    def _attempt_failed(self, record: RetryableOperation, exc: Exception) -> None:
        self._tasks.pop(record.id, None)
        error = ErrorDescriptor.from_exception(exc)
        record.last_error = error
        self._close_attempt(record, succeeded=False)

        try:
            retry = record.policy.should_retry(error, record.attempts)
            delay = record.policy.backoff.delay_for(record.attempts, self._rng) if retry else 0.0
        except Exception:
            logger.exception(
                "Retry policy raised; failing retry",
                extra={"retry_id": record.id, "label": record.label, "attempts": record.attempts},
            )
            self._finalize(record, RetryState.FAILED)
            return

        if not retry:
            logger.warning(
                "Retry failed permanently",
                extra={
                    "retry_id": record.id,
                    "label": record.label,
                    "attempts": record.attempts,
                    "max_attempts": record.max_attempts,
                    "error_code": error.code,
                },
            )
            self._finalize(record, RetryState.FAILED)
            return

        record.delays.append(delay)
        record.next_retry_at = self._clock() + delay
        record.state = RetryState.WAITING
        self._timers[record.id] = asyncio.get_running_loop().call_later(delay, self._launch, record)
        logger.info(
            "Attempt failed; retry scheduled",
            extra={
                "retry_id": record.id,
                "label": record.label,
                "attempts": record.attempts,
                "max_attempts": record.max_attempts,
                "delay": delay,
                "error_code": error.code,
            },
        )
        hooks = self._hooks.get(record.id)
        if hooks is not None and hooks.on_retry is not None:
            self._invoke_callback(hooks.on_retry, record)
        self._listeners.notify(self)

    def _finalize(self, record: RetryableOperation, state: RetryState) -> None:
        record.state = state
        record.next_retry_at = None
        record.finished_at = self._clock()
        self._pending.pop(record.id, None)
        timer = self._timers.pop(record.id, None)
        if timer is not None:
            timer.cancel()

        if state is RetryState.SUCCEEDED:
            self._successful += 1
        elif state is RetryState.FAILED:
            self._failed += 1
        else:
            self._cancelled += 1
        if state is not RetryState.CANCELLED:
            self._terminal_attempts += record.attempts
            self._terminal_count += 1

        self._history.append(record)
        snapshot = self._snapshot(record)
        for future in self._waiters.pop(record.id, []):
            if not future.done():
                future.set_result(snapshot)

        hooks = self._hooks.pop(record.id, None)
        if hooks is not None and hooks.on_complete is not None:
            self._invoke_callback(hooks.on_complete, record)
        self._listeners.notify(self)

    def _invoke_callback(self, callback: RetryCallback, record: RetryableOperation) -> None:
        try:
            callback(self._snapshot(record))
        except Exception:
            logger.exception("Retry callback raised", extra={"retry_id": record.id})

    # -- loading overlay integration -----------------------------------

    def _surface_attempt(self, record: RetryableOperation) -> None:
        if self._registry is None:
            return
        op_id = self._registry.register(
            f"{record.label} (Attempt {record.attempts}/{record.max_attempts})",
            category=record.category,
            estimated_time="Retrying..." if record.attempts > 1 else None,
            context=f"Retry operation: {record.label}",
            operation_id=f"{record.id}:attempt-{record.attempts}",
        )
        self._attempt_ops[record.id] = op_id

    def _close_attempt(self, record: RetryableOperation, *, succeeded: bool) -> None:
        op_id = self._attempt_ops.pop(record.id, None)
        if op_id is None or self._registry is None:
            return
        if succeeded:
            self._registry.finish(op_id)
        else:
            self._registry.cancel(op_id)

    # -- cancellation ---------------------------------------------------

    def cancel_retry(self, retry_id: str) -> None:
        record = self._pending.get(retry_id)
        if record is None:
            logger.debug("Cancel for unknown or finished retry", extra={"retry_id": retry_id})
            return
        task = self._tasks.pop(retry_id, None)
        self._close_attempt(record, succeeded=False)
        logger.info(
            "Retry cancelled",
            extra={"retry_id": retry_id, "label": record.label, "attempts": record.attempts},
        )
        self._finalize(record, RetryState.CANCELLED)
        if task is not None and record.policy.abort_in_flight and not task.done():
            task.cancel()

    def cancel_all_retries(self) -> None:
        pending = list(self._pending)
        for retry_id in pending:
            self.cancel_retry(retry_id)
        if pending:
            logger.info("Cancelled all retries", extra={"cancelled": len(pending)})

    # -- reads ----------------------------------------------------------

    @property
    def operations(self) -> dict[str, RetryableOperation]:
        return {retry_id: self._snapshot(record) for retry_id, record in self._pending.items()}

    @property
    def active_retries(self) -> int:
        return len(self._pending)

    @property
    def total_retries(self) -> int:
        return self._total

    @property
    def successful_retries(self) -> int:
        return self._successful

    @property
    def failed_retries(self) -> int:
        return self._failed

    @property
    def cancelled_retries(self) -> int:
        return self._cancelled

    def now(self) -> float:
        return self._clock()

    def get_pending_retries(self) -> list[RetryableOperation]:
        return [self._snapshot(record) for record in self._pending.values()]

    def get_retry(self, retry_id: str) -> RetryableOperation | None:
        """Return a pending or recently finished retry."""

        record = self._pending.get(retry_id)
        if record is None:
            record = next((item for item in reversed(self._history) if item.id == retry_id), None)
        return self._snapshot(record) if record is not None else None

    def is_retrying(self, retry_id: str) -> bool:
        return retry_id in self._pending

    def get_time_until_retry(self, retry_id: str) -> float:
        """Seconds until the next attempt; 0 means retrying now."""

        record = self._pending.get(retry_id)
        if record is None or record.state is not RetryState.WAITING or record.next_retry_at is None:
            return 0.0
        return max(0.0, record.next_retry_at - self._clock())

    def get_retry_stats(self) -> RetryStats:
        success_rate = (self._successful / self._total) * 100 if self._total else 0.0
        average_attempts = (
            self._terminal_attempts / self._terminal_count if self._terminal_count else 0.0
        )
        return RetryStats(
            success_rate=success_rate,
            average_attempts=average_attempts,
            category_stats=count_by_category(self._pending.values()),
            active_retries=len(self._pending),
            total_retries=self._total,
            successful_retries=self._successful,
            failed_retries=self._failed,
            cancelled_retries=self._cancelled,
        )

    def subscribe(self, listener: Callable[["RetryScheduler"], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    @staticmethod
    def _snapshot(record: RetryableOperation) -> RetryableOperation:
        return replace(record, delays=list(record.delays))


__all__ = ["RetryCallback", "RetryScheduler"]
