"""Integration tests for consultation API endpoints.

Tests cover:
- Start, list, get with owner isolation
- Answer submission with validation errors
- Intelligence merge with source precedence
- Background producer gathering
- Readiness breakdown and resume point
- Artifact milestones advancing the flow state
- Debounced search
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from consultflow.api.deps import get_accumulator, get_producer
from consultflow.core.auth import AuthenticatedOwner, require_auth
from consultflow.core.exceptions import MergeConflictError
from consultflow.services.producers import ProducerFake

pytestmark = pytest.mark.integration


def override_auth(owner: AuthenticatedOwner):
    """Create auth override for a specific owner."""

    async def _override():
        return owner

    return _override


def _start(client: TestClient, prefill: dict | None = None) -> dict:
    response = client.post("/api/consultations", json={"prefill": prefill})
    assert response.status_code == 200
    return response.json()


def test_start_consultation(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)

    data = _start(api_client, {"industry": "SaaS"})

    assert data["status"] == "in_progress"
    assert data["flow_state"] == "signed_up"
    assert data["owner_id"] == "owner_a"
    assert data["industry"] == "SaaS"


def test_start_abandons_previous(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)

    first = _start(api_client)
    second = _start(api_client)

    listed = api_client.get("/api/consultations").json()
    statuses = {item["id"]: item["status"] for item in listed}
    assert statuses == {first["id"]: "abandoned", second["id"]: "in_progress"}


def test_requires_authentication(api_client: TestClient):
    response = api_client.get("/api/consultations")
    assert response.status_code == 401
    assert "debug_id" in response.json()


def test_other_owner_gets_404(api_client: TestClient, owner_a, owner_b):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)

    app.dependency_overrides[require_auth] = override_auth(owner_b)
    response = api_client.get(f"/api/consultations/{created['id']}")

    assert response.status_code == 404


def test_submit_answer(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)

    response = api_client.post(
        f"/api/consultations/{created['id']}/answers",
        json={"field": "Audience", "value": "CFOs at mid-market companies"},
    )

    assert response.status_code == 200
    assert response.json()["target_audience"] == "CFOs at mid-market companies"


def test_invalid_answer_returns_400_with_field(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)

    response = api_client.post(
        f"/api/consultations/{created['id']}/answers",
        json={"field": "unique_value", "value": "cheap"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["field"] == "unique_value"
    assert "debug_id" in body


def test_merge_intelligence_honours_precedence(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)
    url = f"/api/consultations/{created['id']}/intelligence"

    api_client.post(url, json={"source": "brand_guide", "fragment": {"brand": {"primary_color": "#1D4ED8"}}})
    response = api_client.post(
        url, json={"source": "website_extraction", "fragment": {"brand": {"primary_color": "#0F766E"}}}
    )

    assert response.status_code == 200
    assert response.json()["ignored_paths"] == ["brand.primary_color"]
    record = api_client.get(f"/api/consultations/{created['id']}").json()
    assert record["brand_assets"]["primary_color"] == "#1D4ED8"


def test_merge_conflict_returns_409(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)
    contended = MagicMock(ready_threshold=50)
    contended.merge = AsyncMock(side_effect=MergeConflictError(created["id"], 3))
    app.dependency_overrides[get_accumulator] = lambda: contended

    answer = api_client.post(
        f"/api/consultations/{created['id']}/answers",
        json={"field": "industry", "value": "B2B SaaS"},
    )
    merge = api_client.post(
        f"/api/consultations/{created['id']}/intelligence",
        json={"source": "website_extraction", "fragment": {"consultation": {"industry": "SaaS"}}},
    )

    assert answer.status_code == 409
    assert merge.status_code == 409
    assert "debug_id" in answer.json()
    assert "retry" in merge.json()["detail"]


def test_merge_rejects_unknown_source(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)

    response = api_client.post(
        f"/api/consultations/{created['id']}/intelligence",
        json={"source": "rumour", "fragment": {"brand": {}}},
    )

    assert response.status_code == 422


def test_gather_runs_producers_in_background(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    producer = ProducerFake(scenario="partial")
    app.dependency_overrides[get_producer] = lambda: producer
    created = _start(api_client)

    response = api_client.post(
        f"/api/consultations/{created['id']}/gather",
        json={"producers": [{"name": "market_research"}, {"name": "website_extraction"}]},
    )

    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "accepted"
    assert data["channel"] == f"consultation:{created['id']}:events"

    record = api_client.get(f"/api/consultations/{created['id']}").json()
    assert record["business_name"] == "Northwind Ledger"
    assert record["brand_assets"]["primary_color"] == "#0F766E"


def test_gather_rejects_unknown_producer(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)

    response = api_client.post(
        f"/api/consultations/{created['id']}/gather",
        json={"producers": [{"name": "horoscope"}]},
    )

    assert response.status_code == 422


def test_readiness_endpoint(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client, {"industry": "SaaS", "goal": "Leads"})

    data = api_client.get(f"/api/consultations/{created['id']}/readiness").json()

    assert data["readiness_score"] == 10
    assert data["completion_stage"] == "partial"
    assert data["breakdown"]["industry"] == 10
    assert data["resume_field"] == "audience"
    assert data["answered"] == ["industry", "goal"]


def test_artifact_milestones_advance_flow(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)
    base = f"/api/consultations/{created['id']}"

    brief = api_client.post(f"{base}/strategy-brief", json={"brief": {"positioning": "Fastest close"}})
    assert brief.status_code == 200
    assert brief.json()["flow_state"] == "brief_generated"

    published = api_client.post(f"{base}/publish", json={"page_url": "https://northwind.example"})
    assert published.status_code == 200
    assert published.json()["flow_state"] == "published"

    # Completing afterwards never drags the flow state back
    completed = api_client.post(f"{base}/complete")
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["flow_state"] == "published"


def test_publish_without_brief_is_rejected(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)

    response = api_client.post(
        f"/api/consultations/{created['id']}/publish",
        json={"page_url": "https://northwind.example"},
    )

    assert response.status_code == 400


def test_abandon(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)

    response = api_client.post(f"/api/consultations/{created['id']}/abandon")

    assert response.status_code == 200
    assert response.json()["status"] == "abandoned"
    assert api_client.post(f"/api/consultations/{created['id']}/abandon").status_code == 400


def test_search(api_client: TestClient, owner_a):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client, {"business_name": "Northwind Ledger"})

    data = api_client.get("/api/consultations/search", params={"q": "north"}).json()

    assert data["superseded"] is False
    assert [item["id"] for item in data["results"]] == [created["id"]]


def test_events_stream_headers_without_redis(api_client: TestClient, owner_a):
    """Without a Redis pool the stream reports unavailable and closes."""
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(owner_a)
    created = _start(api_client)

    response = api_client.get(f"/api/consultations/{created['id']}/events/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"
    assert response.text == "event: unavailable\ndata: {}\n\n"
