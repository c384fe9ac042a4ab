from __future__ import annotations

from types import SimpleNamespace

import src.runtime_server as runtime_server


def test_worker_count_prefers_env(monkeypatch):
    monkeypatch.delenv("WEB_CONCURRENCY", raising=False)
    monkeypatch.setenv("UVICORN_WORKERS", "4")
    assert runtime_server._worker_count() == 4

    monkeypatch.setenv("UVICORN_WORKERS", "invalid")
    monkeypatch.setenv("WEB_CONCURRENCY", "3")
    assert runtime_server._worker_count() == 3

    monkeypatch.delenv("WEB_CONCURRENCY")
    monkeypatch.setattr(runtime_server.multiprocessing, "cpu_count", lambda: 6)
    assert runtime_server._worker_count() == 6


def test_main_invokes_uvicorn_with_app_factory(monkeypatch):
    monkeypatch.setattr(runtime_server, "_worker_count", lambda: 2)
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.delenv("FASTAPI_APP", raising=False)
    monkeypatch.delenv("HOST", raising=False)
    recorded: dict[str, object] = {}

    def _fake_run(app, **kwargs):
        recorded.update(kwargs, app=app)

    monkeypatch.setattr(runtime_server, "uvicorn", SimpleNamespace(run=_fake_run))
    runtime_server.main()

    assert recorded["app"] == "src.main:create_app"
    assert recorded["host"] == "0.0.0.0"
    assert recorded["port"] == 9090
    assert recorded["workers"] == 2
    assert recorded["factory"] is True
