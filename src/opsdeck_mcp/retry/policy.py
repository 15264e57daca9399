"""Retry policies and the per-category defaults."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Mapping

from ..categories import Category, coerce_category
from .backoff import BackoffStrategy, ExponentialBackoff
from .models import ErrorDescriptor

RetryCondition = Callable[[ErrorDescriptor, int], bool]

_NON_RETRYABLE_HEALTHCARE = {
    "AHPRA_COMPLIANCE_VIOLATION",
    "TGA_DEVICE_COMPLIANCE",
    "AUTH_INVALID_CREDENTIALS",
}


def _server_error(error: ErrorDescriptor) -> bool:
    return error.status is not None and error.status >= 500


def _code_has(error: ErrorDescriptor, *markers: str) -> bool:
    code = (error.code or "").upper()
    return any(marker in code for marker in markers)


def healthcare_condition(error: ErrorDescriptor, attempt: int) -> bool:
    if error.code in _NON_RETRYABLE_HEALTHCARE:
        return False
    return _code_has(error, "NETWORK", "SYSTEM") or _server_error(error)


def compliance_condition(error: ErrorDescriptor, attempt: int) -> bool:
    return _server_error(error) or _code_has(error, "SYSTEM")


def auth_condition(error: ErrorDescriptor, attempt: int) -> bool:
    if error.code == "AUTH_INVALID_CREDENTIALS":
        return False
    return _code_has(error, "NETWORK") or _server_error(error)


def data_condition(error: ErrorDescriptor, attempt: int) -> bool:
    return _code_has(error, "NETWORK", "TIMEOUT") or _server_error(error)


def network_condition(error: ErrorDescriptor, attempt: int) -> bool:
    return _server_error(error) or _code_has(error, "NETWORK", "TIMEOUT")


def general_condition(error: ErrorDescriptor, attempt: int) -> bool:
    return _server_error(error) or _code_has(error, "NETWORK")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times to attempt work and how long to wait in between."""

    max_attempts: int
    backoff: BackoffStrategy
    retry_condition: RetryCondition | None = None
    abort_in_flight: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def should_retry(self, error: ErrorDescriptor, attempts: int) -> bool:
        if attempts >= self.max_attempts:
            return False
        if self.retry_condition is None or not error.classified:
            return True
        return bool(self.retry_condition(error, attempts))

    def with_overrides(self, **changes: Any) -> "RetryPolicy":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    def describe(self) -> dict[str, object]:
        return {
            "max_attempts": self.max_attempts,
            "backoff": self.backoff.describe(),
            "retry_condition": getattr(self.retry_condition, "__name__", None),
            "abort_in_flight": self.abort_in_flight,
        }


@dataclass(frozen=True, slots=True)
class _Preset:
    max_attempts: int
    base: float
    cap: float
    multiplier: float
    jitter: bool
    condition: RetryCondition


_PRESETS: dict[Category, _Preset] = {
    Category.HEALTHCARE: _Preset(5, 2.0, 30.0, 2.0, True, healthcare_condition),
    Category.COMPLIANCE: _Preset(3, 5.0, 60.0, 3.0, True, compliance_condition),
    Category.AUTH: _Preset(3, 1.0, 10.0, 2.0, False, auth_condition),
    Category.DATA: _Preset(4, 1.5, 20.0, 2.5, True, data_condition),
    Category.NETWORK: _Preset(6, 1.0, 15.0, 1.8, True, network_condition),
    Category.GENERAL: _Preset(3, 2.0, 16.0, 2.0, True, general_condition),
}


def default_policies(jitter_fraction: float = 0.25) -> dict[Category, RetryPolicy]:
    """Build the stock policy for every category."""

    policies: dict[Category, RetryPolicy] = {}
    for category, preset in _PRESETS.items():
        policies[category] = RetryPolicy(
            max_attempts=preset.max_attempts,
            backoff=ExponentialBackoff(
                base=preset.base,
                cap=preset.cap,
                multiplier=preset.multiplier,
                jitter_fraction=jitter_fraction if preset.jitter else 0.0,
            ),
            retry_condition=preset.condition,
        )
    return policies


class RetryPolicyBook:
    """Per-category policy lookup with priority and sensitivity adjustments."""

    def __init__(
        self,
        policies: Mapping[Category, RetryPolicy] | None = None,
        *,
        jitter_fraction: float = 0.25,
    ) -> None:
        self._jitter_fraction = jitter_fraction
        self._policies: dict[Category, RetryPolicy] = default_policies(jitter_fraction)
        if policies:
            for category, policy in policies.items():
                self._policies[coerce_category(category)] = policy

    @property
    def jitter_fraction(self) -> float:
        return self._jitter_fraction

    def get(self, category: Category | str) -> RetryPolicy:
        return self._policies[coerce_category(category)]

    def set(self, category: Category | str, policy: RetryPolicy) -> None:
        self._policies[coerce_category(category)] = policy

    def policy_for(
        self,
        category: Category | str,
        *,
        priority: str | None = None,
        sensitive: bool = False,
    ) -> RetryPolicy:
        """Return the category policy adjusted for priority and sensitivity.

        Critical healthcare work retries harder; sensitive data work retries
        at most three times.
        """

        resolved = coerce_category(category)
        policy = self._policies[resolved]
        if resolved is Category.HEALTHCARE and priority == "critical":
            backoff = policy.backoff
            if isinstance(backoff, ExponentialBackoff):
                backoff = replace(backoff, base=1.0, cap=45.0)
            policy = replace(policy, max_attempts=6, backoff=backoff)
        if resolved is Category.DATA and sensitive:
            policy = replace(policy, max_attempts=min(policy.max_attempts, 3))
        return policy

    def items(self) -> Iterable[tuple[Category, RetryPolicy]]:
        return self._policies.items()

    def describe(self) -> dict[str, dict[str, object]]:
        return {category.value: policy.describe() for category, policy in self._policies.items()}


__all__ = [
    "RetryCondition",
    "RetryPolicy",
    "RetryPolicyBook",
    "auth_condition",
    "compliance_condition",
    "data_condition",
    "default_policies",
    "general_condition",
    "healthcare_condition",
    "network_condition",
]
