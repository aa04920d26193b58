import asyncio
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from apps.api.database import CONFIGURATIONS, HKA_RESPONSES, INVOICE_SUBMISSIONS, get_db
from apps.api.hka.cache import SessionCache
from apps.api.hka.client import HkaClient, get_hka_client
from apps.api.hka.models import HkaEnv
from apps.api.hka.rest import RestTransport
from apps.api.hka.transport import MockTransport
from apps.api.settings import settings
from apps.api.main import create_app
from apps.api.tests.fakes import FakeDB

INVOICE = {
    "externalId": "INV-9",
    "customerName": "Cliente",
    "customerRuc": "8-1-1",
    "items": [{"desc": "Servicio", "qty": 3, "unitPrice": 20}],
}


@pytest.fixture()
def fake_db(monkeypatch):
    monkeypatch.setattr(settings, "HKA_WEBHOOK_SECRET", "")
    monkeypatch.setattr(settings, "AUTH_ENABLED", False)
    monkeypatch.setattr(settings, "HKA_EMISOR_RUC", "155555-1-2024")
    db = FakeDB()
    db.docs(CONFIGURATIONS)["c1"] = {
        "companyRuc": "155555-1-2024",
        "companyName": "ACME",
        "webhookIdentifier": "acme",
        "demoApiKey": "k",
    }
    return db


def _make_app(db, transport=None):
    transport = transport or MockTransport()
    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_hka_client] = lambda: HkaClient(
        db=db, transport=transport, session_cache=SessionCache()
    )
    return app


def _unavailable_transport(sleep=lambda s: None, backoff_seconds=1.0):
    def handler(request: httpx.Request):
        if request.url.path == "/auth/token":
            return httpx.Response(200, json={"token": "tok"})
        return httpx.Response(503, json={"message": "Servicio no disponible"})

    return RestTransport(
        {HkaEnv.DEMO: "https://hka.test"},
        sleep=sleep,
        backoff_seconds=backoff_seconds,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_webhook_missing_invoice_is_400_without_records(fake_db):
    client = TestClient(_make_app(fake_db))
    res = client.post("/api/webhooks/invoices/acme", json={"environment": "demo"})

    assert res.status_code == 400
    assert res.json() == {"message": "El payload de la factura (invoice) es requerido."}
    assert fake_db.docs(INVOICE_SUBMISSIONS) == {}
    assert fake_db.docs(HKA_RESPONSES) == {}


def test_webhook_unknown_identifier_is_404(fake_db):
    client = TestClient(_make_app(fake_db))
    res = client.post("/api/webhooks/invoices/nobody", json={"invoice": INVOICE})
    assert res.status_code == 404
    assert res.json()["message"] == "No configuration found for webhook identifier 'nobody'."


def test_webhook_stamps_invoice_for_configuration(fake_db):
    client = TestClient(_make_app(fake_db))
    res = client.post("/api/webhooks/invoices/acme", json={"invoice": INVOICE, "environment": "demo"})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["uuid"].startswith("FE-MOCK-")
    assert body["message"] == "Factura procesada y timbrada exitosamente."

    stored = fake_db.docs(INVOICE_SUBMISSIONS)[body["submissionId"]]
    assert stored["status"] == "certified"
    assert stored["source"] == "webhook"
    assert stored["configId"] == "c1"
    assert stored["environment"] == "demo"


def test_webhook_vendor_outage_reports_hka_error(fake_db):
    client = TestClient(_make_app(fake_db, transport=_unavailable_transport()))
    res = client.post("/api/webhooks/invoices/acme", json={"invoice": INVOICE})

    assert res.status_code == 503
    body = res.json()
    assert body["message"] == "Error al procesar la factura con HKA."
    assert body["error"]["status"] == 503
    assert body["error"]["body"] == {"message": "Servicio no disponible"}
    (stored,) = fake_db.docs(INVOICE_SUBMISSIONS).values()
    assert stored["status"] == "failed"


def test_webhook_malformed_invoice_is_400(fake_db):
    client = TestClient(_make_app(fake_db))
    res = client.post("/api/webhooks/invoices/acme", json={"invoice": {"externalId": "X"}})

    assert res.status_code == 400
    assert res.json()["message"].startswith("Factura inválida")
    (stored,) = fake_db.docs(INVOICE_SUBMISSIONS).values()
    assert stored["status"] == "error"


def test_webhook_secret_is_enforced(fake_db, monkeypatch):
    monkeypatch.setattr(settings, "HKA_WEBHOOK_SECRET", "s3cret")
    client = TestClient(_make_app(fake_db))

    assert client.post("/api/webhooks/invoices/acme", json={"invoice": INVOICE}).status_code == 401
    ok = client.post("/api/webhooks/invoices/acme", json={"invoice": INVOICE}, headers={"X-Webhook-Secret": "s3cret"})
    assert ok.status_code == 200


def test_webhook_with_environment_credentials(fake_db):
    client = TestClient(_make_app(fake_db))
    res = client.post("/api/webhooks/invoices", json={"invoice": INVOICE})

    assert res.status_code == 200
    stored = fake_db.docs(INVOICE_SUBMISSIONS)[res.json()["submissionId"]]
    assert stored["configId"] is None


def test_manual_timbrar_returns_vendor_result(fake_db):
    client = TestClient(_make_app(fake_db))
    res = client.post("/api/hka/timbrar", json={"invoice": INVOICE, "configId": "c1", "environment": "demo"})

    assert res.status_code == 200
    body = res.json()
    assert body["Estado"] == "ACEPTADO"
    assert body["uuid"].startswith("FE-MOCK-")
    assert fake_db.docs(INVOICE_SUBMISSIONS)[body["submissionId"]]["source"] == "manual"


def test_manual_timbrar_vendor_outage_uses_vendor_message(fake_db):
    client = TestClient(_make_app(fake_db, transport=_unavailable_transport()))
    res = client.post("/api/hka/timbrar", json={"invoice": INVOICE, "configId": "c1", "environment": "demo"})
    assert res.status_code == 503
    assert res.json() == {"message": "Servicio no disponible"}


def test_request_body_validation_is_400(fake_db):
    client = TestClient(_make_app(fake_db))
    res = client.post("/api/hka/timbrar", json={"invoice": "not-an-object"})
    assert res.status_code == 400
    assert "invoice" in res.json()["message"]


def test_submission_listing_detail_and_retry(fake_db):
    failing = TestClient(_make_app(fake_db, transport=_unavailable_transport()))
    res = failing.post("/api/webhooks/invoices/acme", json={"invoice": INVOICE})
    assert res.status_code == 503
    (sub_id,) = fake_db.docs(INVOICE_SUBMISSIONS).keys()

    client = TestClient(_make_app(fake_db))
    listing = client.get("/api/invoices/submissions?status=failed").json()
    assert listing["total"] == 1
    assert listing["submissions"][0]["id"] == sub_id
    assert listing["submissions"][0]["submissionDate"]

    detail = client.get(f"/api/invoices/submissions/{sub_id}").json()
    assert detail["submission"]["status"] == "failed"
    assert detail["response"]["statusCode"] == 503

    retried = client.post(f"/api/invoices/submissions/{sub_id}/retry", json={})
    assert retried.status_code == 200
    assert retried.json()["status"] == "certified"

    again = client.post(f"/api/invoices/submissions/{sub_id}/retry")
    assert again.status_code == 409


def test_submission_not_found_and_bad_filters(fake_db):
    client = TestClient(_make_app(fake_db))
    assert client.get("/api/invoices/submissions/missing").status_code == 404
    assert client.post("/api/invoices/submissions/missing/retry").status_code == 404
    res = client.get("/api/invoices/submissions?dateFrom=zzz")
    assert res.status_code == 400


def test_stale_run(fake_db):
    fake_db.docs(INVOICE_SUBMISSIONS)["old"] = {
        "submissionDate": "2020-01-01T00:00:00.000Z",
        "invoiceData": "{}",
        "status": "pending",
        "hkaResponseId": None,
    }
    client = TestClient(_make_app(fake_db))

    assert client.post("/api/invoices/stale/run?olderThanMinutes=0").status_code == 400
    res = client.post("/api/invoices/stale/run?olderThanMinutes=30")
    assert res.json() == {"ok": True, "updated": 1}
    assert fake_db.docs(INVOICE_SUBMISSIONS)["old"]["status"] == "error"


def test_webhook_backoff_does_not_stall_other_requests(fake_db):
    # Two retries sleep 0.25 s then 0.5 s inside the worker thread.
    app = _make_app(fake_db, transport=_unavailable_transport(sleep=time.sleep, backoff_seconds=0.25))

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:

            async def health_after_delay():
                await asyncio.sleep(0.1)
                started = time.monotonic()
                res = await client.get("/health")
                return res, time.monotonic() - started

            return await asyncio.gather(
                client.post("/api/webhooks/invoices/acme", json={"invoice": INVOICE}),
                health_after_delay(),
            )

    webhook, (health, elapsed) = asyncio.run(scenario())

    assert webhook.status_code == 503
    assert health.status_code == 200
    assert elapsed < 0.3
