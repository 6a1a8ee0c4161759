from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from sweepstakes import main as app_main


def _settings(*, enable_openapi_docs: bool) -> SimpleNamespace:
    return SimpleNamespace(
        app_env="test",
        log_level="INFO",
        enable_openapi_docs=enable_openapi_docs,
        public_route_paths=app_main.DEFAULT_PUBLIC_ROUTE_PATHS,
    )


def test_openapi_docs_enabled(monkeypatch) -> None:
    monkeypatch.setattr(app_main, "get_settings", lambda: _settings(enable_openapi_docs=True))
    client = TestClient(app_main.create_app())

    assert client.get("/docs").status_code == 200
    assert client.get("/redoc").status_code == 200
    assert client.get("/openapi.json").status_code == 200


def test_openapi_docs_disabled(monkeypatch) -> None:
    monkeypatch.setattr(app_main, "get_settings", lambda: _settings(enable_openapi_docs=False))
    client = TestClient(app_main.create_app())

    assert client.get("/docs").status_code == 404
    assert client.get("/redoc").status_code == 404
    assert client.get("/openapi.json").status_code == 404


def test_create_app_rejects_narrowed_public_paths(monkeypatch) -> None:
    settings = _settings(enable_openapi_docs=True)
    settings.public_route_paths = "/health,/ready,/live"
    monkeypatch.setattr(app_main, "get_settings", lambda: settings)

    with pytest.raises(RuntimeError) as exc_info:
        app_main.create_app()

    assert "/webhooks/everflow" in str(exc_info.value)
    assert "/entries" in str(exc_info.value)
