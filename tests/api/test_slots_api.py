"""Slot listing endpoint tests"""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from tests.helpers import upcoming_dates as window


@pytest.fixture
def network(factory):
    payer = factory.payer()
    provider = factory.provider()
    factory.contract(provider, payer)
    factory.every_day(provider, "09:00", "12:00")
    instance = factory.service_instance(duration=60)
    return provider, payer, instance


def test_payer_slots(client: TestClient, network):
    provider, payer, instance = network

    response = client.get("/slots", params={"payer_id": str(payer.id), **window()})

    assert response.status_code == 200
    body = response.json()
    assert body["acceptance"]["status"] == "active"
    assert body["service_instance_id"] == str(instance.id)
    assert body["duration_minutes"] == 60
    assert body["truncated"] is False
    assert len(body["slots"]) == 6
    assert all(s["provider_id"] == str(provider.id) for s in body["slots"])
    starts = [datetime.fromisoformat(s["start"]) for s in body["slots"]]
    assert starts == sorted(starts)
    assert all(s.utcoffset() is not None for s in starts)


def test_payer_slots_in_requested_timezone(client: TestClient, network):
    _, payer, _ = network

    body = client.get("/slots", params={"payer_id": str(payer.id), "timezone": "UTC", **window(1)}).json()

    assert body["timezone"] == "UTC"
    assert len(body["slots"]) == 3
    assert all(datetime.fromisoformat(s["start"]).utcoffset() == timedelta(0) for s in body["slots"])


def test_not_accepted_payer_gets_no_slots(client: TestClient, factory, network):
    provider, _, _ = network
    payer = factory.payer(status_code="denied")
    factory.contract(provider, payer)

    body = client.get("/slots", params={"payer_id": str(payer.id), **window()}).json()

    assert body["acceptance"]["status"] == "not-accepted"
    assert body["slots"] == []
    assert body["service_instance_id"] is None


def test_no_service_mapping(client: TestClient, factory):
    payer = factory.payer()
    factory.service_instance(systems=())

    response = client.get("/slots", params={"payer_id": str(payer.id), **window()})

    assert response.status_code == 422
    assert response.json()["code"] == "NO_BOOKABLE_SERVICE_FOR_PAYER"


def test_reversed_range(client: TestClient, network):
    _, payer, _ = network
    params = {"payer_id": str(payer.id), "start_date": "2025-06-10", "end_date": "2025-06-01"}

    response = client.get("/slots", params=params)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_DATE_RANGE"


def test_unknown_timezone(client: TestClient, network):
    _, payer, _ = network

    response = client.get("/slots", params={"payer_id": str(payer.id), "timezone": "Nowhere/Town", **window()})

    assert response.status_code == 400


def test_provider_slots(client: TestClient, network):
    provider, _, instance = network

    response = client.get(
        f"/slots/providers/{provider.id}", params={"service_instance_id": str(instance.id), **window(1)}
    )

    assert response.status_code == 200
    assert len(response.json()["slots"]) == 3


def test_missing_dates(client: TestClient, network):
    _, payer, _ = network
    assert client.get("/slots", params={"payer_id": str(payer.id)}).status_code == 422
