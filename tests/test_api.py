"""HTTP surface: routes, response envelope and error-code mapping."""
import pytest
from fastapi.testclient import TestClient

from application.services.provider_registry import ProviderRegistry
from main import app, install_orchestrators
from tests.fakes import FakeProvider, InMemoryLedger


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider("stripe")


@pytest.fixture
def client(provider) -> TestClient:
    # No context manager: the lifespan (real providers, DB tables) is not run
    install_orchestrators(app, ProviderRegistry([provider], availability_timeout=0.05), InMemoryLedger().uow_factory)
    return TestClient(app)


def _charge(client: TestClient, **kw):
    body = {"customer_id": "cus_1", "amount": 1000, "currency": "USD", "payment_method": "tok"}
    body.update(kw)
    return client.post("/api/v1/payments/charges", json=body)


def test_health_lists_providers(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy", "providers": ["stripe"]}


def test_charge_and_fetch(client):
    resp = _charge(client)
    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    payment = resp.json()["data"]
    assert payment["status"] == "succeeded"
    assert payment["provider_name"] == "stripe"

    fetched = client.get(f"/api/v1/payments/{payment['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["id"] == payment["id"]

    listed = client.get("/api/v1/payments", params={"customer_id": "cus_1"})
    page = listed.json()["data"]
    assert [p["id"] for p in page["items"]] == [payment["id"]]
    assert page["count"] == 1


def test_domain_validation_maps_to_400(client):
    resp = _charge(client, amount=0)
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "DomainValidationError"


def test_request_validation_maps_to_400(client):
    resp = client.post("/api/v1/payments/charges", json={"currency": "USD"})
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "ValidationError"


def test_missing_payment_maps_to_404(client):
    assert client.get("/api/v1/payments/nope").status_code == 404


def test_no_provider_maps_to_503(client, provider):
    provider.available = False
    resp = _charge(client)
    assert resp.status_code == 503
    assert resp.json()["error"]["details"]["tried"] == ["stripe"]


def test_refund_over_http(client):
    payment = _charge(client).json()["data"]
    resp = client.post("/api/v1/payments/refunds", json={"payment_id": payment["id"], "amount": 1000, "currency": "USD"})
    assert resp.status_code == 200
    assert client.get(f"/api/v1/payments/{payment['id']}").json()["data"]["status"] == "refunded"
    assert len(client.get(f"/api/v1/payments/{payment['id']}/refunds").json()["data"]) == 1


def test_plan_and_subscription_routes(client):
    plan = client.post(
        "/api/v1/plans",
        json={"name": "Pro", "amount": 1500, "currency": "USD", "billing_period": "monthly"},
    ).json()["data"]
    sub = client.post("/api/v1/subscriptions", json={"customer_id": "cus_1", "plan_id": plan["id"]})
    assert sub.status_code == 200
    sub_id = sub.json()["data"]["id"]

    canceled = client.post(f"/api/v1/subscriptions/{sub_id}/cancel")
    assert canceled.status_code == 200
    assert canceled.json()["data"]["status"] == "canceled"


def test_illegal_dispute_transition_maps_to_400(client):
    dispute = client.post(
        "/api/v1/disputes",
        json={"transaction_id": "tx_1", "reason": "fraudulent", "amount": 500, "currency": "USD"},
    ).json()["data"]

    resp = client.put(f"/api/v1/disputes/{dispute['id']}", json={"status": "won"})
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "InvalidStatusTransition"

    stats = client.get("/api/v1/disputes/stats").json()["data"]
    assert stats["total"] == 1
    assert stats["open"] == 1
