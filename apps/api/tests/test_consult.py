from fastapi.testclient import TestClient

from apps.api.consult import get_rng
from apps.api.main import create_app


class _FixedRng:
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


def _client(value: float) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_rng] = lambda: _FixedRng(value)
    return TestClient(app)


def test_ruc_found():
    res = _client(0.1).post("/api/consult/ruc", json={"ruc": "155555-1-2024"})
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "found"
    assert body["ruc"] == "155555-1-2024"
    assert body["isTaxpayer"] is True


def test_ruc_not_found():
    res = _client(0.95).post("/api/consult/ruc", json={"ruc": "8-1-1"})
    assert res.status_code == 404
    assert res.json() == {"status": "not_found", "message": "No se encontró contribuyente con RUC 8-1-1."}


def test_ruc_required():
    res = _client(0.1).post("/api/consult/ruc", json={})
    assert res.status_code == 400
    assert res.json() == {"message": "El RUC es requerido."}
