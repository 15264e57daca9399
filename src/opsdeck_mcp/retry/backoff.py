"""Backoff strategies for the retry scheduler.

``attempts`` is the number of attempts already made, so the delay before the
second attempt is ``delay_for(1, rng)``.

Example:
    >>> strategy = ExponentialBackoff(base=1.0, cap=8.0, jitter_fraction=0.0)
    >>> [strategy.delay_for(n, random.Random()) for n in range(1, 6)]
    [1.0, 2.0, 4.0, 8.0, 8.0]
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass


class BackoffStrategy(ABC):
    """Abstract base for delay calculations."""

    @abstractmethod
    def base_delay(self, attempts: int) -> float:
        """Delay in seconds before the next attempt, without jitter."""
        ...

    def delay_for(self, attempts: int, rng: random.Random) -> float:
        return self.base_delay(attempts)

    def describe(self) -> dict[str, object]:
        return {"type": type(self).__name__}


@dataclass(frozen=True, slots=True)
class ExponentialBackoff(BackoffStrategy):
    """Capped exponential delay with multiplicative jitter.

    delay = min(cap, base * multiplier ** (attempts - 1)) * (1 + jitter_fraction * random())
    """

    base: float = 1.0
    cap: float = 30.0
    multiplier: float = 2.0
    jitter_fraction: float = 0.25

    def __post_init__(self) -> None:
        if self.base < 0 or self.cap < 0:
            raise ValueError("Backoff base and cap must be >= 0")
        if self.multiplier < 1:
            raise ValueError("Backoff multiplier must be >= 1")
        if not 0.0 <= self.jitter_fraction <= 1.0:
            raise ValueError("Jitter fraction must be between 0 and 1")

    def base_delay(self, attempts: int) -> float:
        exponent = max(attempts, 1) - 1
        try:
            raw = self.base * (self.multiplier ** exponent)
        except OverflowError:
            return self.cap
        return min(self.cap, raw)

    def delay_for(self, attempts: int, rng: random.Random) -> float:
        delay = self.base_delay(attempts)
        if self.jitter_fraction:
            delay *= 1 + self.jitter_fraction * rng.random()
        return delay

    def describe(self) -> dict[str, object]:
        return {
            "type": "exponential",
            "base": self.base,
            "cap": self.cap,
            "multiplier": self.multiplier,
            "jitter_fraction": self.jitter_fraction,
        }


@dataclass(frozen=True, slots=True)
class LinearBackoff(BackoffStrategy):
    """delay = min(cap, base + increment * (attempts - 1))"""

    base: float = 1.0
    increment: float = 1.0
    cap: float = 30.0

    def __post_init__(self) -> None:
        if self.base < 0 or self.increment < 0 or self.cap < 0:
            raise ValueError("Linear backoff values must be >= 0")

    def base_delay(self, attempts: int) -> float:
        return min(self.cap, self.base + self.increment * (max(attempts, 1) - 1))

    def describe(self) -> dict[str, object]:
        return {"type": "linear", "base": self.base, "increment": self.increment, "cap": self.cap}


@dataclass(frozen=True, slots=True)
class ConstantBackoff(BackoffStrategy):
    delay: float = 1.0

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ValueError("Constant backoff delay must be >= 0")

    def base_delay(self, attempts: int) -> float:
        return self.delay

    def describe(self) -> dict[str, object]:
        return {"type": "constant", "delay": self.delay}


__all__ = ["BackoffStrategy", "ConstantBackoff", "ExponentialBackoff", "LinearBackoff"]
