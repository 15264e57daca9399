"""Retry policy loading utilities."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from ..categories import Category
from ..config import OpsDeckSettings
from ..retry import ExponentialBackoff, RetryPolicy, RetryPolicyBook
from .models import PolicyOverride


class PolicyLoadError(RuntimeError):
    """Raised when one or more policy files cannot be parsed."""


class PolicyLoader:
    """Loads retry policy overrides from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> dict[Category, PolicyOverride]:
        """Load overrides from all configured search paths.

        Later search paths override earlier ones when categories collide.
        """

        if not self._search_paths:
            return {}

        overrides: dict[Category, PolicyOverride] = {}
        errors: list[str] = []

        for base in self._search_paths:
            if base.is_file():
                files = [base]
            else:
                files = sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml"))
            for path in files:
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                entries = _extract_entries(document)
                if entries is None:
                    errors.append(f"Policy file {path} must contain a list of policies")
                    continue

                for entry in entries:
                    try:
                        override = PolicyOverride.model_validate(entry)
                    except ValidationError as exc:
                        errors.append(f"Policy validation error in {path}: {exc}")
                        continue
                    overrides[override.category] = override

        if errors:
            raise PolicyLoadError("; ".join(errors))

        return overrides


def _extract_entries(document: Any) -> list[Any] | None:
    if isinstance(document, dict) and "policies" in document:
        document = document["policies"]
    if isinstance(document, list):
        return document
    return None


def apply_override(
    policy: RetryPolicy, override: PolicyOverride, *, jitter_fraction: float
) -> RetryPolicy:
    """Return ``policy`` with the fields set in ``override`` replaced."""

    backoff = policy.backoff
    if not isinstance(backoff, ExponentialBackoff):
        backoff = ExponentialBackoff(jitter_fraction=jitter_fraction)

    changes: dict[str, Any] = {}
    if override.base_delay is not None:
        changes["base"] = override.base_delay
    if override.max_delay is not None:
        changes["cap"] = override.max_delay
    if override.multiplier is not None:
        changes["multiplier"] = override.multiplier
    if override.jitter is not None:
        changes["jitter_fraction"] = jitter_fraction if override.jitter else 0.0
    if changes:
        backoff = replace(backoff, **changes)

    return policy.with_overrides(
        max_attempts=override.max_attempts,
        backoff=backoff,
        abort_in_flight=override.abort_in_flight,
    )


def load_policy_book(settings: OpsDeckSettings) -> RetryPolicyBook:
    """Build the policy book from defaults plus any overrides on disk."""

    book = RetryPolicyBook(jitter_fraction=settings.jitter_fraction)
    overrides = PolicyLoader(settings.policy_paths).load_all()
    for category, override in overrides.items():
        book.set(
            category,
            apply_override(book.get(category), override, jitter_fraction=book.jitter_fraction),
        )
    return book


__all__ = ["PolicyLoadError", "PolicyLoader", "apply_override", "load_policy_book"]
