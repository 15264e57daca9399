"""Policy override models for retry configuration files."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ..categories import Category


class PolicyOverride(BaseModel):
    """Adjusts the stock retry policy of one category."""

    category: Category = Field(..., description="Category whose policy is adjusted.")
    max_attempts: int | None = Field(
        default=None, ge=1, description="Upper bound on attempts, including the first."
    )
    base_delay: float | None = Field(
        default=None, ge=0, description="Delay in seconds before the second attempt."
    )
    max_delay: float | None = Field(default=None, ge=0, description="Cap on the un-jittered delay.")
    multiplier: float | None = Field(default=None, ge=1, description="Exponential growth factor.")
    jitter: bool | None = Field(
        default=None,
        description="Whether the configured jitter fraction applies to this category.",
    )
    abort_in_flight: bool | None = Field(
        default=None,
        description="Cancel the in-flight asyncio task when the retry is cancelled.",
    )

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _check_delays(self) -> "PolicyOverride":
        if (
            self.base_delay is not None
            and self.max_delay is not None
            and self.max_delay < self.base_delay
        ):
            raise ValueError("max_delay must not be smaller than base_delay")
        return self


__all__ = ["PolicyOverride"]
