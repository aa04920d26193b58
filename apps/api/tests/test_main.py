from fastapi.testclient import TestClient

from apps.api.auth import ANONYMOUS_USER
from apps.api.main import create_app
from apps.api.settings import settings
from apps.api.tests.fakes import FakeDB
from apps.api.database import get_db


def test_health():
    res = TestClient(create_app()).get("/health")
    assert res.status_code == 200
    assert res.json()["ok"] is True


def test_unknown_route_uses_message_body():
    res = TestClient(create_app()).get("/api/nope")
    assert res.status_code == 404
    assert res.json() == {"message": "Not Found"}


def test_dashboard_requires_token_when_auth_enabled(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_ENABLED", True)
    app = create_app()
    app.dependency_overrides[get_db] = lambda: FakeDB()

    res = TestClient(app).get("/api/invoices/submissions")

    assert res.status_code == 401
    assert res.json() == {"message": "Invalid authorization header format"}


def test_dashboard_is_open_when_auth_disabled(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_ENABLED", False)
    app = create_app()
    app.dependency_overrides[get_db] = lambda: FakeDB()

    res = TestClient(app).get("/api/invoices/submissions")

    assert res.status_code == 200
    assert res.json() == {"submissions": [], "total": 0}
    assert ANONYMOUS_USER["uid"] == "anonymous"


def test_unhandled_error_renders_json_message():
    app = create_app()

    @app.get("/api/boom")
    async def boom():
        raise RuntimeError("firestore unavailable")

    res = TestClient(app, raise_server_exceptions=False).get("/api/boom")

    assert res.status_code == 500
    assert res.json() == {"message": "Error interno del servidor.", "error": "firestore unavailable"}
