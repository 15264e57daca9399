from __future__ import annotations

import argparse
import importlib.util
import json
from pathlib import Path

import pytest


def load_diag(module_name: str):
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "opsdeck_diag.py"
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    assert spec and spec.loader
    diag = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(diag)
    return diag


def test_policies_lists_every_category(monkeypatch, capsys, tmp_path: Path) -> None:
    monkeypatch.setenv("OPSDECK_POLICY_PATHS", str(tmp_path))
    diag = load_diag("opsdeck_diag_policies_module")

    diag.cmd_policies(argparse.Namespace(category=None))

    payload = json.loads(capsys.readouterr().out)
    assert set(payload) == {"healthcare", "compliance", "auth", "data", "network", "general"}
    assert payload["network"]["max_attempts"] == 6


def test_backoff_preview_is_seeded(monkeypatch, capsys, tmp_path: Path) -> None:
    monkeypatch.setenv("OPSDECK_POLICY_PATHS", str(tmp_path))
    diag = load_diag("opsdeck_diag_backoff_module")

    args = argparse.Namespace(category="auth", attempts=None, seed=3, priority=None, sensitive=False)
    diag.cmd_backoff(args)

    payload = json.loads(capsys.readouterr().out)
    assert payload["max_attempts"] == 3
    assert [item["delay"] for item in payload["schedule"]] == [1.0, 2.0]
    assert payload["total_wait"] == 3.0


def test_backoff_preview_applies_priority(monkeypatch, capsys, tmp_path: Path) -> None:
    monkeypatch.setenv("OPSDECK_POLICY_PATHS", str(tmp_path))
    diag = load_diag("opsdeck_diag_priority_module")

    diag.main(["backoff", "--category", "healthcare", "--priority", "critical", "--seed", "1"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["max_attempts"] == 6
    assert len(payload["schedule"]) == 5
    bases = [item["base_delay"] for item in payload["schedule"]]
    assert bases == sorted(bases)
    assert bases[0] == 1.0


def test_invalid_policy_file_exits(monkeypatch, capsys, tmp_path: Path) -> None:
    (tmp_path / "bad.yaml").write_text("- category: nowhere\n", encoding="utf-8")
    monkeypatch.setenv("OPSDECK_POLICY_PATHS", str(tmp_path))
    diag = load_diag("opsdeck_diag_invalid_module")

    with pytest.raises(SystemExit):
        diag.cmd_policies(argparse.Namespace(category=None))

    assert "Policy overrides invalid" in capsys.readouterr().out
