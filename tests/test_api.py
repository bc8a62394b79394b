"""
HTTP API tests over an in-process ASGI transport.

Validates:
- opaque user tokens are exchanged for bearer tokens
- a full plan-and-work flow through the REST routes
- tagged errors map to HTTP status codes with their reason
"""

import httpx
import pytest

from sprintdesk import config
from sprintdesk.core.auth import create_access_token
from sprintdesk.main import create_app

from .conftest import story


@pytest.fixture
def settings():
    return config.TestingConfig()


@pytest.fixture
async def client(engine, settings):
    app = create_app(settings, engine)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def auth_for(settings):
    def headers(user_id):
        token = create_access_token({"sub": user_id}, settings)
        return {"Authorization": f"Bearer {token}"}

    return headers


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestAuth:
    async def test_exchange_token(self, client):
        response = await client.post("/api/v1/auth/token", json={"token": "token-u-ana"})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["id"] == "u-ana"
        assert "token" not in body["user"]

        me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.json()["display_name"] == "Ana"

    async def test_unknown_token(self, client):
        response = await client.post("/api/v1/auth/token", json={"token": "forged"})

        assert response.status_code == 401
        assert response.json()["detail"]["kind"] == "unauthenticated"

    async def test_bad_bearer(self, client):
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_missing_bearer(self, client):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code in (401, 403)

    async def test_bearer_for_deleted_user(self, client, auth_for):
        response = await client.get("/api/v1/auth/me", headers=auth_for("u-ghost"))
        assert response.status_code == 401


class TestPlanningFlow:
    async def test_initialize_plan_and_work(self, client, auth_for):
        leader, member = auth_for("u-ana"), auth_for("u-bob")

        init = await client.post(
            "/api/v1/projects/Grupo1/initialize",
            json={"project_count": 2, "durations": {"GenT": 2, "Proy": 3}},
            headers=leader,
        )
        assert init.status_code == 200
        assert init.json()["started"] is True

        created = await client.post("/api/v1/backlog/Grupo1/GenT", json=story(5), headers=leader)
        assert created.status_code == 201
        item_id = created.json()["id"]

        selected = await client.post(
            "/api/v1/sprints/Grupo1/GenT/select", json={"item_ids": [item_id]}, headers=leader
        )
        assert selected.json() == {"selected": [item_id]}

        task = await client.post(
            "/api/v1/tasks/Grupo1/GenT",
            json={"description": "Build form", "assignees": ["Bob"], "backlog_item_id": item_id, "estimate_hours": 4},
            headers=leader,
        )
        assert task.status_code == 201
        task_id = task.json()["id"]

        blocked = await client.post("/api/v1/sprints/Grupo1/GenT/advance", headers=leader)
        assert blocked.status_code == 409
        assert blocked.json()["detail"]["reason"] == "sprint_incomplete"

        done = await client.post(
            f"/api/v1/tasks/Grupo1/GenT/{task_id}/state", json={"state": "DONE"}, headers=member
        )
        assert done.status_code == 200
        assert done.json()["state"] == "DONE"

        advanced = await client.post("/api/v1/sprints/Grupo1/GenT/advance", headers=leader)
        assert advanced.status_code == 200
        assert advanced.json()["number"] == 2

        first = await client.get("/api/v1/sprints/Grupo1/GenT/1", headers=member)
        assert first.json()["scrum_board"] == [item_id]

        tasks = await client.get("/api/v1/tasks/Grupo1/GenT", params={"sprint": 1}, headers=member)
        assert [t["id"] for t in tasks.json()] == [task_id]

    async def test_member_cannot_create_tasks(self, client, auth_for, started_team):
        response = await client.post(
            "/api/v1/tasks/Grupo1/GenT", json={"description": "Sneaky"}, headers=auth_for("u-bob")
        )

        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "insufficient_role"

    async def test_unknown_project_is_404(self, client, auth_for, started_team):
        response = await client.get("/api/v1/backlog/Grupo1/Proy2", headers=auth_for("u-bob"))
        assert response.status_code == 404

    async def test_invalid_body_is_rejected(self, client, auth_for, started_team):
        response = await client.post(
            "/api/v1/backlog/Grupo1/GenT", json={"as_a": "student"}, headers=auth_for("u-ana")
        )
        assert response.status_code == 422


class TestMetricsAndAdmin:
    async def test_dashboard_is_role_shaped(self, client, auth_for, planned_sprint):
        member = await client.get("/api/v1/metrics/dashboard", headers=auth_for("u-bob"))
        admin = await client.get("/api/v1/metrics/dashboard", headers=auth_for("u-eve"))

        assert [t["task_id"] for t in member.json()["my_tasks"]] == [planned_sprint["bob_task"].id]
        assert member.json()["team_metrics"] is None
        assert admin.json()["global_metrics"]["total_tasks"] == 2

    async def test_global_metrics_forbidden_for_leaders(self, client, auth_for, started_team):
        response = await client.get("/api/v1/metrics/global", headers=auth_for("u-ana"))
        assert response.status_code == 403

    async def test_productivity_and_ranking_routes(self, client, auth_for, planned_sprint):
        report = await client.get("/api/v1/metrics/productivity/Grupo1", headers=auth_for("u-ana"))
        ranking = await client.get("/api/v1/metrics/ranking", headers=auth_for("u-ana"))

        assert report.status_code == 200
        assert report.json()["summary"]["total_tasks"] == 2
        assert ranking.status_code == 403

        audited = await client.get("/api/v1/metrics/ranking", headers=auth_for("u-fay"))
        assert audited.json() == {"entries": [], "total_seconds": 0, "average_seconds": 0.0}

    async def test_admin_changes_role(self, client, auth_for):
        response = await client.post(
            "/api/v1/admin/users/u-bob/role", json={"role": "leader"}, headers=auth_for("u-eve")
        )

        assert response.status_code == 200
        assert response.json()["role"] == "leader"

    async def test_reset_requires_admin(self, client, auth_for, started_team):
        response = await client.post(
            "/api/v1/projects/Grupo1/reset", json={"preserve_backlog": True}, headers=auth_for("u-ana")
        )
        assert response.status_code == 403
