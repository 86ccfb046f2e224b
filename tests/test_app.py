"""Tests for the command-line bootstrap."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pytest

from rangerelay import app
from rangerelay.services.host import LocalHost
from rangerelay.services.settings import Settings, SettingsStore


def test_coerce_cli_overrides_casts_types() -> None:
    overrides = app._coerce_cli_overrides(
        [
            "debug_logging=true",
            "inject_attempts=7",
            "backoff_base=0.25",
        ]
    )

    assert overrides["debug_logging"] is True
    assert overrides["inject_attempts"] == 7
    assert overrides["backoff_base"] == pytest.approx(0.25)


@pytest.mark.parametrize("entry", ["not_a_setting=value", "backoff_base", "=1", "debug_logging=maybe"])
def test_coerce_cli_overrides_rejects_bad_entries(entry: str) -> None:
    with pytest.raises(ValueError):
        app._coerce_cli_overrides([entry])


def test_dump_settings_reports_fixed_endpoint(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    buffer = io.StringIO()

    app._dump_settings(Settings(backoff_cap=3.0), store, overrides={"backoff_cap": 3.0}, stream=buffer)

    payload = json.loads(buffer.getvalue())
    assert payload["settings"]["backoff_cap"] == 3.0
    assert payload["meta"]["endpoint"] == "ws://127.0.0.1:8765"
    assert payload["meta"]["cli_overrides"] == ["backoff_cap"]
    assert payload["meta"]["path"] == str(tmp_path / "settings.json")


def test_main_dump_settings_applies_overrides(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(app, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.delenv("RANGERELAY_BACKOFF_FACTOR", raising=False)
    path = tmp_path / "settings.json"
    SettingsStore(path).save(Settings(heartbeat_interval=9.0))

    app.main(["--dump-settings", "--settings-path", str(path), "--set", "backoff_factor=1.5"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["settings"]["heartbeat_interval"] == 9.0
    assert payload["settings"]["backoff_factor"] == 1.5


def test_main_rejects_invalid_override(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(app, "configure_logging", lambda *args, **kwargs: None)

    with pytest.raises(SystemExit) as excinfo:
        app.main(["--dump-settings", "--set", "nope=1"])

    assert excinfo.value.code == 2
    assert "Invalid --set override" in capsys.readouterr().err


def test_main_runs_supervisor_with_demo_host(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(app, "configure_logging", lambda *args, **kwargs: None)
    calls = []

    async def fake_serve(settings, host, *, endpoint=app.DEFAULT_ENDPOINT):
        calls.append((settings, host, endpoint))

    monkeypatch.setattr(app, "serve", fake_serve)

    app.main(["--settings-path", str(tmp_path / "settings.json"), "--demo-text", "draft"])

    assert len(calls) == 1
    settings, host, endpoint = calls[0]
    assert isinstance(settings, Settings)
    assert isinstance(host, LocalHost)
    assert endpoint == "ws://127.0.0.1:8765"
    assert host.contexts()[0].page.active_element.value == "draft"


def test_setup_logging_writes_to_log_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from rangerelay.utils import logging as logging_utils

    root = logging.getLogger()
    previous_handlers, previous_level = list(root.handlers), root.level
    monkeypatch.setenv("RANGERELAY_LOG_DIR", str(tmp_path))

    try:
        log_path = logging_utils.setup_logging(console=False, force=True)
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)

    assert log_path == tmp_path / "rangerelay.log"
    assert logging_utils.get_log_path() == log_path
