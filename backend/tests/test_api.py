"""HTTP tests for the v1 API.

Uses httpx AsyncClient over the ASGI app with the session and current-user
dependencies overridden; the session is the in-memory SQLite one from
conftest.py.
"""
import csv
import inspect
import io

import pytest
from fastapi.routing import APIRoute
from httpx import AsyncClient, ASGITransport

from app.core.deps import CurrentUser, get_current_user
from app.core.limiter import limiter
from app.db.session import get_session
from app.main import app


# ─── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def act_as(db):
    """Route requests through the test session; call act_as(user) to switch identity."""
    def _session_override():
        yield db

    app.dependency_overrides[get_session] = _session_override
    limiter.reset()

    def _act_as(user):
        identity = CurrentUser(id=user.id, role=user.role, department_id=user.department_id)
        app.dependency_overrides[get_current_user] = lambda: identity

    yield _act_as
    app.dependency_overrides.clear()


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _submitted_application(client, act_as, org):
    act_as(org["applicant"])
    response = await client.post("/api/v1/applications", json={
        "type": "expense",
        "title": "Conference tickets",
        "department_id": str(org["department"].id),
        "total_amount": "820.00",
        "metadata": {"event": "PyCon"},
    })
    assert response.status_code == 201
    application_id = response.json()["id"]
    response = await client.post(f"/api/v1/applications/{application_id}/submit")
    assert response.status_code == 200
    return application_id


# ─── Auth ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_requests_without_token_are_rejected():
    async with _client() as client:
        response = await client.get("/api/v1/approvals")
    assert response.status_code == 401


# ─── Applications + actions ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_full_approval_over_http(act_as, factory, org):
    factory.route(org["department"], [{"approver_id": org["x"].id}])

    async with _client() as client:
        application_id = await _submitted_application(client, act_as, org)

        act_as(org["x"])
        pending = await client.get("/api/v1/approvals")
        assert pending.status_code == 200
        assert [item["application"]["id"] for item in pending.json()["items"]] == [application_id]

        response = await client.post(
            f"/api/v1/approvals/{application_id}/actions",
            json={"action": "approve", "comment": "OK", "expected_status": "pending"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["application"]["status"] == "approved"
        assert body["application"]["current_approver_id"] is None
        assert body["application"]["metadata"] == {"event": "PyCon"}
        assert body["entry"]["action"] == "approve"
        assert body["replayed"] is False

        act_as(org["applicant"])
        history = await client.get(f"/api/v1/applications/{application_id}/history")
        assert history.status_code == 200
        data = history.json()
        assert [e["action"] for e in data["entries"]] == ["submit", "approve"]
        assert data["is_consistent"] is True
        assert data["days_waiting"] is None


@pytest.mark.asyncio
async def test_wrong_approver_gets_403(act_as, factory, org):
    factory.route(org["department"], [{"approver_id": org["x"].id}])

    async with _client() as client:
        application_id = await _submitted_application(client, act_as, org)
        act_as(org["y"])
        response = await client.post(f"/api/v1/approvals/{application_id}/actions", json={"action": "reject"})

    assert response.status_code == 403
    assert response.json()["error"] == "UnauthorizedActionError"


@pytest.mark.asyncio
async def test_action_on_terminal_application_is_409(act_as, factory, org):
    application = factory.application(org["applicant"], org["department"], status="rejected")
    act_as(org["x"])

    async with _client() as client:
        response = await client.post(f"/api/v1/approvals/{application.id}/actions", json={"action": "approve"})

    assert response.status_code == 409
    body = response.json()
    assert body["current_status"] == "rejected"
    assert body["action"] == "approve"


@pytest.mark.asyncio
async def test_submit_without_route_is_404(act_as, factory, org):
    application = factory.application(org["applicant"], org["department"])
    act_as(org["applicant"])

    async with _client() as client:
        response = await client.post(f"/api/v1/applications/{application.id}/submit")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_invalid_create_is_400(act_as, org):
    act_as(org["applicant"])

    async with _client() as client:
        response = await client.post("/api/v1/applications", json={
            "type": "holiday", "title": "Beach", "department_id": str(org["department"].id),
        })

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_employee_sees_only_own_applications(act_as, factory, org):
    mine = factory.application(org["applicant"], org["department"])
    factory.application(org["x"], org["department"])
    act_as(org["applicant"])

    async with _client() as client:
        response = await client.get("/api/v1/applications")
        other = factory.application(org["y"], org["department"])
        forbidden = await client.get(f"/api/v1/applications/{other.id}")

    assert [item["id"] for item in response.json()["items"]] == [str(mine.id)]
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_history_export_csv(act_as, factory, org):
    factory.route(org["department"], [{"approver_id": org["x"].id}])

    async with _client() as client:
        application_id = await _submitted_application(client, act_as, org)
        response = await client.get(f"/api/v1/applications/{application_id}/history/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0][:3] == ["sequence", "created_at", "action"]
    assert rows[1][2] == "submit"


# ─── Route administration ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_route_admin_requires_admin(act_as, org):
    act_as(org["x"])

    async with _client() as client:
        response = await client.get("/api/v1/approval-routes")

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_route_create_and_replace_steps(act_as, org):
    act_as(org["admin"])

    async with _client() as client:
        created = await client.post("/api/v1/approval-routes", json={
            "name": "Travel",
            "department_id": str(org["department"].id),
            "steps": [
                {"approver_id": str(org["x"].id), "max_amount": "50000"},
                {"approver_id": str(org["y"].id), "min_amount": "50001"},
                {"approver_type": "department_head"},
            ],
        })
        assert created.status_code == 201
        route = created.json()
        assert [s["step_number"] for s in route["steps"]] == [1, 2, 3]
        assert route["created_by"] == str(org["admin"].id)

        updated = await client.put(f"/api/v1/approval-routes/{route['id']}", json={
            "steps": [route["steps"][0], route["steps"][2]],
        })
        assert updated.status_code == 200
        assert [(s["step_number"], s["approver_type"]) for s in updated.json()["steps"]] == [
            (1, "user"), (2, "department_head"),
        ]

        bad = await client.post("/api/v1/approval-routes", json={
            "name": "Broken", "department_id": str(org["department"].id), "steps": [{"approver_type": "role"}],
        })
        assert bad.status_code == 400

        deleted = await client.delete(f"/api/v1/approval-routes/{route['id']}")
        assert deleted.status_code == 204
        missing = await client.get(f"/api/v1/approval-routes/{route['id']}")
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_processing_time_endpoint(act_as, org):
    act_as(org["admin"])

    async with _client() as client:
        response = await client.get("/api/v1/audit/processing-time", params={"department_id": str(org["department"].id)})

    assert response.status_code == 200
    assert response.json() == {
        "department_id": str(org["department"].id),
        "average_processing_days": 0.0,
        "sample_size": 0,
    }


def test_database_endpoints_are_sync():
    """Sync Session I/O must run in FastAPI's threadpool, not on the event loop."""
    routes = [r for r in app.routes if isinstance(r, APIRoute) and r.path.startswith("/api/v1")]

    assert routes
    for route in routes:
        assert not inspect.iscoroutinefunction(route.endpoint), route.path
