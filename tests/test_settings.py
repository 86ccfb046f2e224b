"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
import os
from dataclasses import asdict
from pathlib import Path

import pytest

from rangerelay.services.settings import Settings, SettingsStore


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("RANGERELAY_"):
            monkeypatch.delenv(name, raising=False)


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")

    assert store.load() == Settings()


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.json"
    original = Settings(backoff_base=1.0, backoff_cap=30.0, inject_attempts=5, debug_logging=True)

    written = SettingsStore(path).save(original)
    reloaded = SettingsStore(path).load()

    assert written == path
    assert reloaded == original
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert not path.with_suffix(".tmp").exists()


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"heartbeat_interval": 5.0, "endpoint": "ws://elsewhere"}), encoding="utf-8")

    settings = SettingsStore(path).load()

    assert settings.heartbeat_interval == 5.0
    assert not hasattr(settings, "endpoint")


@pytest.mark.parametrize("body", ["{not json", "[1, 2]", "42"])
def test_corrupt_file_falls_back_to_defaults(tmp_path: Path, body: str) -> None:
    path = tmp_path / "settings.json"
    path.write_text(body, encoding="utf-8")

    assert SettingsStore(path).load() == Settings()


def test_cli_overrides_apply_on_top_of_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(Settings(probe_timeout=2.0, inject_attempts=4))

    settings = SettingsStore(path).load(overrides={"probe_timeout": 0.25, "bogus": 1, "inject_attempts": None})

    assert settings.probe_timeout == 0.25
    assert settings.inject_attempts == 4


def test_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(Settings(backoff_cap=4.0))
    monkeypatch.setenv("RANGERELAY_BACKOFF_CAP", "16")
    monkeypatch.setenv("RANGERELAY_INJECT_ATTEMPTS", "6")
    monkeypatch.setenv("RANGERELAY_DEBUG_LOGGING", "yes")
    monkeypatch.setenv("RANGERELAY_DELIVERY_TIMEOUT", "2.5")

    settings = SettingsStore(path).load(overrides={"backoff_cap": 2.0})

    assert settings.backoff_cap == 16.0
    assert settings.inject_attempts == 6
    assert settings.debug_logging is True
    assert settings.delivery_timeout == 2.5


def test_invalid_env_values_are_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RANGERELAY_HEARTBEAT_INTERVAL", "often")
    monkeypatch.setenv("RANGERELAY_INJECT_ATTEMPTS", "3.5")

    settings = SettingsStore(tmp_path / "settings.json").load()

    assert asdict(settings) == asdict(Settings())
