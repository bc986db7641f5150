"""Integration tests for flow routing and milestone endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from consultflow.core.auth import AuthenticatedOwner, require_auth

pytestmark = pytest.mark.integration


def override_auth(owner: AuthenticatedOwner):
    """Create auth override for a specific owner."""

    async def _override():
        return owner

    return _override


def test_next_without_consultation_routes_to_demo(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)

    data = api_client.get("/api/flow/next").json()

    assert data["route"] == "/demo"
    assert data["confirmation_type"] is None


def test_next_uses_active_consultation(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    api_client.post("/api/consultations", json={"prefill": {"industry": "SaaS", "goal": "Leads"}})

    data = api_client.get("/api/flow/next").json()

    assert data["route"] == "/wizard?step=audience"
    assert data["resume_field"] == "audience"


def test_advance_and_history(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = api_client.post("/api/consultations", json={}).json()

    response = api_client.post(
        f"/api/flow/{created['id']}/advance",
        json={"state": "brand_captured", "reason": "brand_confirmed"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "consultation_id": created["id"],
        "previous": "signed_up",
        "current": "brand_captured",
        "changed": True,
        "reason": "signed_up -> brand_captured",
    }

    history = api_client.get(f"/api/flow/{created['id']}/history").json()
    assert [(event["from_state"], event["to_state"]) for event in history] == [
        (None, "signed_up"),
        ("signed_up", "brand_captured"),
    ]


def test_regression_returns_409(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = api_client.post("/api/consultations", json={}).json()
    api_client.post(f"/api/flow/{created['id']}/advance", json={"state": "brief_generated"})

    response = api_client.post(f"/api/flow/{created['id']}/advance", json={"state": "brand_captured"})

    assert response.status_code == 409
    assert "debug_id" in response.json()
    current = api_client.get(f"/api/consultations/{created['id']}").json()["flow_state"]
    assert current == "brief_generated"


def test_advance_rejects_unknown_state(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = api_client.post("/api/consultations", json={}).json()

    response = api_client.post(f"/api/flow/{created['id']}/advance", json={"state": "halfway"})

    assert response.status_code == 422


def test_low_readiness_brand_captured_goes_back_to_checklist(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = api_client.post("/api/consultations", json={"prefill": {"industry": "SaaS"}}).json()
    api_client.post(f"/api/flow/{created['id']}/advance", json={"state": "brand_captured"})

    data = api_client.get(f"/api/flow/{created['id']}/next").json()

    assert data["route"] == "/wizard?step=goal"
    assert "more answers needed" in data["reasoning"]


def test_flow_is_owner_scoped(api_client: TestClient, owner_a, owner_b):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = api_client.post("/api/consultations", json={}).json()

    app.dependency_overrides[require_auth] = override_auth(owner_b)

    assert api_client.get(f"/api/flow/{created['id']}/next").status_code == 404
    assert api_client.post(
        f"/api/flow/{created['id']}/advance", json={"state": "published"}
    ).status_code == 404
