"""Bookability endpoint tests"""

import uuid

from fastapi.testclient import TestClient


def test_read_served_live_without_snapshot(client: TestClient, factory):
    payer = factory.payer()
    provider = factory.provider()
    factory.contract(provider, payer)

    response = client.get(f"/bookability/{payer.id}", params={"as_of": "2025-06-01"})

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "live"
    assert body["source_reason"] == "missing"
    assert body["no_eligible_providers"] is False
    assert [e["provider_id"] for e in body["entries"]] == [str(provider.id)]
    assert body["entries"][0]["via"] == "direct"
    assert "max-age=" in response.headers["cache-control"]


def test_refresh_then_read_from_cache(client: TestClient, factory, admin_key: str):
    payer = factory.payer()
    factory.contract(factory.provider(), payer)

    refresh = client.post(
        "/bookability/refresh",
        json={"payer_id": str(payer.id), "as_of": "2025-06-01"},
        headers={"X-API-Key": admin_key},
    )
    assert refresh.status_code == 200
    assert refresh.json()["payers_refreshed"] == 1
    assert refresh.json()["errors"] == []

    body = client.get(f"/bookability/{payer.id}", params={"as_of": "2025-06-01"}).json()
    assert body["source"] == "cache"
    assert body["snapshot_version"] == 1


def test_refresh_requires_admin(client: TestClient, factory):
    response = client.post("/bookability/refresh", json={})
    assert response.status_code == 403


def test_empty_payer_flags_no_eligible_providers(client: TestClient, factory):
    payer = factory.payer()

    body = client.get(f"/bookability/{payer.id}").json()

    assert body["entries"] == []
    assert body["no_eligible_providers"] is True


def test_invalid_payer_id(client: TestClient):
    response = client.get("/bookability/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_IDENTIFIER"
    assert "trace_id" in response.json()


def test_unknown_payer(client: TestClient):
    response = client.get(f"/bookability/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_reconcile(client: TestClient, factory, admin_key: str):
    payer = factory.payer()
    client.post("/bookability/refresh", json={"payer_id": str(payer.id)}, headers={"X-API-Key": admin_key})

    body = client.get("/bookability/reconcile", params={"payer_id": str(payer.id)}).json()

    assert body["checked"] == 1
    assert body["consistent"] == 1


def test_health_report(client: TestClient, factory):
    factory.payer(name="Empty Plan")

    response = client.get("/bookability/health", params={"as_of": "2025-06-01"})

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"


def test_acceptance(client: TestClient, factory):
    active = factory.payer()
    denied = factory.payer(status_code="denied")

    assert client.get(f"/payers/{active.id}/acceptance").json()["status"] == "active"
    body = client.get(f"/payers/{denied.id}/acceptance").json()
    assert body["status"] == "not-accepted"
    assert body["message"] == "We are not currently accepting this insurance."
