"""HTTP API tests against an app wired to a throwaway database."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from core.container import build_services


@pytest.fixture
def client(test_settings):
    services = build_services(test_settings)

    async def prepare():
        await services.db.init_db()
        await services.registry.initialize()
        await services.db.dispose()

    asyncio.run(prepare())
    app = create_app(services)
    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(services.db.dispose)


def test_enqueue_and_fetch_job(client) -> None:
    """Enqueued jobs should be readable by id and counted in stats."""
    created = client.post(
        "/api/jobs", json={"kind": "tax_assessment", "postal_code": "90210", "priority": 1}
    )
    job_id = created.json()["id"]

    fetched = client.get(f"/api/jobs/{job_id}")
    stats = client.get("/api/jobs/stats")

    assert created.status_code == 201
    assert fetched.json()["status"] == "pending"
    assert fetched.json()["priority"] == 1
    assert fetched.json()["target"]["postal_code"] == "90210"
    assert stats.json()["pending"] == 1
    assert stats.json()["total"] == 1


def test_enqueue_validation_errors(client) -> None:
    """Empty targets and unknown kinds should be rejected."""
    empty = client.post("/api/jobs", json={"kind": "research"})
    unknown = client.post("/api/jobs", json={"kind": "weather", "url": "https://x.test"})

    assert empty.status_code == 422
    assert unknown.status_code == 422


def test_cancel_endpoint_status_codes(client) -> None:
    """Cancel should succeed once, then conflict; unknown ids are 404."""
    job_id = client.post(
        "/api/jobs", json={"kind": "research", "source_id": "cbre:research"}
    ).json()["id"]

    first = client.post(f"/api/jobs/{job_id}/cancel")
    second = client.post(f"/api/jobs/{job_id}/cancel")
    missing = client.post("/api/jobs/nope/cancel")

    assert first.status_code == 200
    assert client.get(f"/api/jobs/{job_id}").json()["error_message"] == "cancelled"
    assert second.status_code == 409
    assert missing.status_code == 404
    assert client.get("/api/jobs/nope").status_code == 404


def test_stale_endpoint_with_no_properties(client) -> None:
    """Stale refresh with an empty property table should enqueue nothing."""
    response = client.post("/api/jobs/stale", params={"max_jobs": 5})

    assert response.json() == {"enqueued": 0, "job_ids": []}


def test_source_endpoints(client) -> None:
    """Sources should be listed and postal codes resolved to assessors."""
    assessors = client.get("/api/sources", params={"source_type": "assessor"}).json()
    la = client.get("/api/sources/postal/90210")
    brooklyn = client.get("/api/sources/postal/11201")

    assert len(assessors) == 10
    assert all(s["source_type"] == "assessor" for s in assessors)
    assert la.json()["source_id"] == "los_angeles_ca"
    assert brooklyn.status_code == 404


def test_quality_and_health(client) -> None:
    """Quality overview and health should answer on an empty database."""
    quality = client.get("/api/quality").json()
    health = client.get("/health").json()

    assert quality == {"records": {}, "health": [], "recent": []}
    assert health["status"] == "ok"
    assert health["active_jobs"] == 0
