"""Shared category vocabulary and small statistics helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


class Category(str, Enum):
    """Coarse classification used for prioritised display."""

    HEALTHCARE = "healthcare"
    COMPLIANCE = "compliance"
    AUTH = "auth"
    DATA = "data"
    NETWORK = "network"
    GENERAL = "general"


class ComplianceLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_CATEGORIES = (Category.HEALTHCARE, Category.COMPLIANCE)


def coerce_category(value: Category | str | None) -> Category:
    """Return a ``Category`` for ``value``, falling back to ``general``."""

    if isinstance(value, Category):
        return value
    if value is None:
        return Category.GENERAL
    try:
        return Category(str(value).strip().lower())
    except ValueError:
        logger.debug("Unknown category, using general", extra={"category": value})
        return Category.GENERAL


def parse_category(value: Category | str) -> Category | None:
    """Return the ``Category`` named by ``value``, or ``None`` if unrecognised."""

    if isinstance(value, Category):
        return value
    try:
        return Category(str(value).strip().lower())
    except ValueError:
        return None


def coerce_compliance_level(value: ComplianceLevel | str | None) -> ComplianceLevel | None:
    if value is None or isinstance(value, ComplianceLevel):
        return value
    try:
        return ComplianceLevel(str(value).strip().lower())
    except ValueError:
        logger.debug("Unknown compliance level ignored", extra={"compliance_level": value})
        return None


def count_by_category(items: Iterable[Any]) -> dict[str, int]:
    """Count items by their ``category`` attribute."""

    counts: dict[str, int] = {}
    for item in items:
        category = coerce_category(getattr(item, "category", None)).value
        counts[category] = counts.get(category, 0) + 1
    return counts


def mean(values: Iterable[float]) -> float:
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


class ListenerSet:
    """Subscriber list whose failures never reach the publisher."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[Any], None]] = []

    def subscribe(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, source: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(source)
            except Exception:
                logger.exception("Listener raised during notification")

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = [
    "Category",
    "ComplianceLevel",
    "ListenerSet",
    "PRIORITY_CATEGORIES",
    "coerce_category",
    "coerce_compliance_level",
    "count_by_category",
    "mean",
    "parse_category",
]
