from __future__ import annotations

import json
import stat

from src import startup


def test_hydrate_google_credentials_writes_json(tmp_path, monkeypatch):
    target = tmp_path / "keys" / "creds.json"
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(target))
    monkeypatch.setenv("SERVICE_ACCOUNT_JSON", '{"type":"service_account"}')

    assert startup.hydrate_google_credentials_file() == target
    assert json.loads(target.read_text())["type"] == "service_account"
    assert stat.S_IMODE(target.stat().st_mode) == 0o600


def test_hydrate_google_credentials_supports_path_source(tmp_path, monkeypatch):
    source = tmp_path / "source.json"
    source.write_text('{"type":"service_account","project_id":"demo"}')
    target = tmp_path / "hydrated.json"
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(target))
    monkeypatch.setenv("SERVICE_ACCOUNT_JSON", str(source))

    startup.hydrate_google_credentials_file()
    assert json.loads(target.read_text())["project_id"] == "demo"


def test_hydrate_google_credentials_skips_invalid_json(tmp_path, monkeypatch, caplog):
    target = tmp_path / "creds.json"
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(target))
    monkeypatch.setenv("SERVICE_ACCOUNT_JSON", "{not-json")
    with caplog.at_level("WARNING"):
        assert startup.hydrate_google_credentials_file() is None
    assert "service_account_json_invalid" in caplog.text
    assert not target.exists()


def test_hydrate_google_credentials_ignores_blank_or_missing_settings(tmp_path, monkeypatch):
    target = tmp_path / "creds.json"
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(target))
    monkeypatch.setenv("SERVICE_ACCOUNT_JSON", "   ")
    assert startup.hydrate_google_credentials_file() is None

    monkeypatch.delenv("SERVICE_ACCOUNT_JSON")
    assert startup.hydrate_google_credentials_file() is None
    assert not target.exists()
