from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from opsdeck_mcp.config import OpsDeckSettings, get_settings


def test_defaults() -> None:
    settings = OpsDeckSettings()
    assert settings.log_level == "INFO"
    assert settings.jitter_fraction == 0.25
    assert settings.default_timeout == 30.0
    assert (settings.slow_ratio, settings.late_ratio) == (0.5, 0.8)


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OPSDECK_LOG_LEVEL", " debug ")
    monkeypatch.setenv("OPSDECK_POLICY_PATHS", os.pathsep.join([str(tmp_path), "other"]))
    monkeypatch.setenv("OPSDECK_JITTER_FRACTION", "0.5")

    settings = OpsDeckSettings()

    assert settings.log_level == "DEBUG"
    assert settings.policy_paths == (tmp_path, Path("other"))
    assert settings.jitter_fraction == 0.5


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("OPSDECK_LOG_LEVEL", "LOUD"),
        ("OPSDECK_JITTER_FRACTION", "2"),
        ("OPSDECK_DEFAULT_TIMEOUT", "0"),
        ("OPSDECK_SLOW_RATIO", "0.9"),
        ("OPSDECK_RETRY_HISTORY_LIMIT", "0"),
    ],
)
def test_invalid_values_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        OpsDeckSettings()


def test_get_settings_resolves_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OPSDECK_POLICY_PATHS", str(tmp_path / "policies"))
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.policy_paths == ((tmp_path / "policies").resolve(),)
        assert get_settings() is settings
    finally:
        get_settings.cache_clear()
