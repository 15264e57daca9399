"""Configuration management for OpsDeck MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class OpsDeckSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = Field(default="INFO", validation_alias="OPSDECK_LOG_LEVEL")
    policy_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("policies"),), validation_alias="OPSDECK_POLICY_PATHS"
    )
    jitter_fraction: float = Field(default=0.25, validation_alias="OPSDECK_JITTER_FRACTION")
    default_timeout: float = Field(default=30.0, validation_alias="OPSDECK_DEFAULT_TIMEOUT")
    slow_ratio: float = Field(default=0.5, validation_alias="OPSDECK_SLOW_RATIO")
    late_ratio: float = Field(default=0.8, validation_alias="OPSDECK_LATE_RATIO")
    retry_history_limit: int = Field(default=100, validation_alias="OPSDECK_RETRY_HISTORY_LIMIT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "OPSDECK_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("policy_paths", mode="before")
    @classmethod
    def _parse_policy_paths(cls, value):
        if value is None or value == "":
            return (Path("policies"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("policies"),)
        raise TypeError("OPSDECK_POLICY_PATHS must be a list of paths or a path-separated string")

    @field_validator("jitter_fraction")
    @classmethod
    def _validate_jitter_fraction(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("OPSDECK_JITTER_FRACTION must be between 0 and 1")
        return value

    @field_validator("default_timeout")
    @classmethod
    def _validate_default_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("OPSDECK_DEFAULT_TIMEOUT must be > 0")
        return value

    @field_validator("retry_history_limit")
    @classmethod
    def _validate_history_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("OPSDECK_RETRY_HISTORY_LIMIT must be >= 1")
        return value

    @model_validator(mode="after")
    def _validate_ratios(self) -> "OpsDeckSettings":
        if not 0.0 < self.slow_ratio < self.late_ratio:
            raise ValueError("OPSDECK_SLOW_RATIO must be > 0 and below OPSDECK_LATE_RATIO")
        return self


@lru_cache(maxsize=1)
def get_settings() -> OpsDeckSettings:
    """Return cached settings instance."""

    settings = OpsDeckSettings()
    settings.policy_paths = tuple(path.expanduser().resolve() for path in settings.policy_paths)
    return settings


__all__ = ["OpsDeckSettings", "get_settings"]
