"""End-to-end HTTP checks through the FastAPI app."""

import pytest
from fastapi.testclient import TestClient

from flowpay.common.signing import signed_form
from flowpay.common.state_machine import APPROVED, PENDING
from flowpay.services.checkout.main import create_app
from flowpay.services.checkout.store import InMemoryOrderStore

from conftest import SECRET, pending_order


@pytest.fixture
def client(settings, gateway, store):
    app = create_app(settings, store=store, gateway_transport=gateway.transport)
    with TestClient(app) as test_client:
        yield test_client


def test_create_payment_returns_gateway_redirect(client, store):
    resp = client.post("/api/createPayment", json={"amount": 1000, "email": "buyer@example.com"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["flowUrl"] == "https://pay.test/p?token=tok123"
    assert body["token"] == "tok123"
    assert store.get(body["orderId"]).status == PENDING


@pytest.mark.parametrize(
    "payload",
    [{"amount": 0, "email": "buyer@example.com"}, {"amount": 1000, "email": ""}, {"email": "buyer@example.com"}],
)
def test_create_payment_rejects_bad_input(client, gateway, payload):
    resp = client.post("/api/createPayment", json=payload)
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert resp.json()["message"]
    assert gateway.requests == []


def test_create_payment_rejects_malformed_body(client):
    resp = client.post("/api/createPayment", json={"amount": "lots", "email": "buyer@example.com"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Invalid request body."}


def test_create_payment_hides_gateway_details(client, gateway):
    gateway.create_response = (200, {"code": 1, "message": "internal detail"})
    resp = client.post("/api/createPayment", json={"amount": 1000, "email": "buyer@example.com"})
    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert "internal detail" not in resp.text


def test_confirmation_approves_and_acks(client, store):
    store.create(pending_order())
    form = signed_form({"commerceOrder": "ORDER-1", "status": "1"}, SECRET.encode())

    resp = client.post("/api/paymentConfirmation", data=form)

    assert resp.status_code == 200
    assert resp.text == "OK"
    assert store.get("ORDER-1").status == APPROVED


def test_duplicate_confirmation_is_acked_twice(client, store):
    store.create(pending_order())
    form = signed_form({"commerceOrder": "ORDER-1", "status": "1"}, SECRET.encode())

    first = client.post("/api/paymentConfirmation", data=form)
    second = client.post("/api/paymentConfirmation", data=form)

    assert first.text == second.text == "OK"
    assert store.get("ORDER-1").status == APPROVED
    assert len(store.history("ORDER-1")) == 2


def test_confirmation_with_wrong_secret_is_forbidden(client, store):
    store.create(pending_order())
    form = signed_form({"commerceOrder": "ORDER-1", "status": "1"}, b"wrong-secret")

    resp = client.post("/api/paymentConfirmation", data=form)

    assert resp.status_code == 403
    assert resp.text == "Invalid Signature"
    assert store.get("ORDER-1").status == PENDING


def test_confirmation_with_tampered_amount_is_forbidden(client, store):
    store.create(pending_order())
    form = signed_form({"commerceOrder": "ORDER-1", "status": "1", "amount": "1000"}, SECRET.encode())
    form["amount"] = "1"

    resp = client.post("/api/paymentConfirmation", data=form)

    assert resp.status_code == 403
    assert store.get("ORDER-1").status == PENDING


def test_payment_status_reads_through_gateway(client, gateway, store):
    store.create(pending_order())
    gateway.status_response = (200, {"status": 2, "commerceOrder": "ORDER-1"})

    resp = client.get("/api/paymentStatus/ORDER-1", params={"token": "tok-1"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["status"] == 2
    assert body["flowResponse"] == {"status": 2, "commerceOrder": "ORDER-1"}


def test_payment_status_gateway_failure(client, gateway, store):
    store.create(pending_order())
    gateway.status_response = (500, "oops")
    resp = client.get("/api/paymentStatus/ORDER-1")
    assert resp.status_code == 500
    assert resp.json()["success"] is False


def test_payment_status_unknown_order_without_token(client):
    resp = client.get("/api/paymentStatus/ORDER-404")
    assert resp.status_code == 400
    assert resp.json()["success"] is False


@pytest.mark.parametrize("method", ["get", "post"])
def test_status_page_is_served(client, method):
    resp = getattr(client, method)("/paymentStatus/ORDER-1")
    assert resp.status_code == 200
    assert "text/html" in resp.headers["content-type"]
    assert "ORDER-1" in resp.text


def test_status_page_escapes_order_id(client):
    resp = client.get("/paymentStatus/%3Cscript%3E")
    assert "<script>alert" not in resp.text
    assert "&lt;script&gt;" in resp.text


def test_health_and_metrics(client):
    assert client.get("/health").json() == {"ok": True}
    client.post("/api/createPayment", json={"amount": 1000, "email": "buyer@example.com"})
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "payment_sessions_total" in metrics.text


class FailingCreateStore(InMemoryOrderStore):
    def create(self, order):
        raise RuntimeError("database unavailable")


class FailingReadStore(InMemoryOrderStore):
    def get(self, order_id):
        raise RuntimeError("database unavailable")


def test_create_payment_store_failure_is_json(settings, gateway):
    app = create_app(settings, store=FailingCreateStore(), gateway_transport=gateway.transport)
    with TestClient(app) as client:
        resp = client.post("/api/createPayment", json={"amount": 1000, "email": "buyer@example.com"})

    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json()["success"] is False
    assert resp.json()["message"]
    assert "database unavailable" not in resp.text


def test_payment_status_store_failure_is_json(settings, gateway):
    app = create_app(settings, store=FailingReadStore(), gateway_transport=gateway.transport)
    with TestClient(app) as client:
        resp = client.get("/api/paymentStatus/ORDER-1", params={"token": "tok-1"})

    assert resp.status_code == 500
    assert resp.json()["success"] is False


def test_payment_status_for_another_order_is_an_error(client, gateway, store):
    store.create(pending_order())
    gateway.status_response = (200, {"status": 1, "commerceOrder": "ORDER-2"})

    resp = client.get("/api/paymentStatus/ORDER-1")

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert "status" not in body
    assert store.get("ORDER-1").status == PENDING
