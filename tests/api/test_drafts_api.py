"""Integration tests for draft autosave and recovery endpoints."""

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


def test_save_and_get_draft(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)

    saved = api_client.put("/api/drafts", json={"wizard_data": {"industry": "SaaS"}, "current_step": "goal"})
    assert saved.status_code == 200

    data = api_client.get("/api/drafts").json()
    assert data["wizard_data"] == {"industry": "SaaS"}
    assert data["current_step"] == "goal"


def test_missing_draft_is_404(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    assert api_client.get("/api/drafts").status_code == 404


def test_check_offers_three_choices(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    api_client.post("/api/consultations", json={})
    api_client.put("/api/drafts", json={"wizard_data": {"industry": "SaaS", "goal": "Leads"}})

    data = api_client.get("/api/drafts/check").json()

    assert data["offered"] is True
    assert data["choices"] == ["resume", "start_fresh", "delete"]
    assert data["resume_field"] == "industry"


def test_resolve_resume(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    api_client.put("/api/drafts", json={"wizard_data": {"industry": "SaaS"}, "current_step": "goal"})

    data = api_client.post("/api/drafts/resolve", json={"choice": "resume"}).json()

    assert data["choice"] == "resume"
    assert data["wizard_data"] == {"industry": "SaaS"}
    assert data["resume_field"] == "goal"


def test_resolve_start_fresh(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    previous = api_client.post("/api/consultations", json={"prefill": {"industry": "SaaS"}}).json()
    api_client.put("/api/drafts", json={"wizard_data": {"industry": "Fintech"}})

    data = api_client.post("/api/drafts/resolve", json={"choice": "start_fresh"}).json()

    assert data["consultation_id"] != previous["id"]
    assert data["resume_field"] == "industry"
    assert api_client.get(f"/api/consultations/{previous['id']}").json()["status"] == "abandoned"
    assert api_client.get("/api/drafts").status_code == 404


def test_resolve_rejects_unknown_choice(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)

    assert api_client.post("/api/drafts/resolve", json={"choice": "merge"}).status_code == 422
