# tests/test_projects.py — Project CRUD, visibility and plan limits
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers, make_project, add_collaborator


@pytest.mark.asyncio
class TestCreateProject:
    async def test_create_project(self, client: AsyncClient, test_user):
        resp = await client.post(
            "/api/projects",
            json={"name": "Website", "description": "Relaunch"},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["name"] == "Website"
        assert data["status"] == "Planning"
        assert data["progress"] == 0
        assert data["userId"] == test_user.id

    async def test_create_with_tags(self, client: AsyncClient, test_user, storage):
        resp = await client.post(
            "/api/projects",
            json={"name": "Tagged", "tags": ["design", "web", "design", " "]},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 201
        tags = await storage.get_project_tags(resp.json()["id"])
        assert [t.name for t in tags] == ["design", "web"]

    async def test_create_requires_name(self, client: AsyncClient, test_user):
        resp = await client.post("/api/projects", json={"description": "no name"}, headers=get_auth_headers(test_user))
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "name"

    async def test_create_rejects_unknown_status(self, client: AsyncClient, test_user):
        resp = await client.post(
            "/api/projects",
            json={"name": "X", "status": "Archived"},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 400

    async def test_free_plan_limit(self, client: AsyncClient, test_user, storage):
        headers = get_auth_headers(test_user)
        for i in range(3):
            resp = await client.post("/api/projects", json={"name": f"P{i}"}, headers=headers)
            assert resp.status_code == 201

        resp = await client.post("/api/projects", json={"name": "One too many"}, headers=headers)
        assert resp.status_code == 403
        assert resp.json() == {
            "message": "Project limit reached for your subscription plan",
            "currentPlan": "free",
            "limit": 3,
        }
        assert await storage.count_owned_projects(test_user.id) == 3

    async def test_upgrade_lifts_limit(self, client: AsyncClient, test_user, admin_user, storage):
        headers = get_auth_headers(test_user)
        for i in range(3):
            await client.post("/api/projects", json={"name": f"P{i}"}, headers=headers)
        resp = await client.post("/api/projects", json={"name": "Fourth"}, headers=headers)
        assert resp.status_code == 403

        resp = await client.patch(
            f"/api/users/{test_user.id}/plan", json={"plan": "pro"}, headers=get_auth_headers(admin_user),
        )
        assert resp.status_code == 200

        resp = await client.post("/api/projects", json={"name": "Fourth"}, headers=headers)
        assert resp.status_code == 201
        assert resp.json()["name"] == "Fourth"
        assert await storage.count_owned_projects(test_user.id) == 4

    async def test_collaborations_do_not_count(self, client: AsyncClient, db_session, test_user, other_user):
        for i in range(3):
            project = await make_project(db_session, other_user, name=f"Theirs {i}")
            await add_collaborator(db_session, project, test_user)
        resp = await client.post("/api/projects", json={"name": "Mine"}, headers=get_auth_headers(test_user))
        assert resp.status_code == 201

    async def test_malformed_body_over_limit_is_400(self, client: AsyncClient, db_session, test_user):
        for i in range(3):
            await make_project(db_session, test_user, name=f"P{i}")
        resp = await client.post("/api/projects", json={"name": ""}, headers=get_auth_headers(test_user))
        assert resp.status_code == 400


@pytest.mark.asyncio
class TestReadProjects:
    async def test_list_owned_then_collaborated(self, client: AsyncClient, db_session, test_user, other_user):
        mine = await make_project(db_session, test_user, name="Mine")
        theirs = await make_project(db_session, other_user, name="Theirs")
        await make_project(db_session, other_user, name="Private")
        await add_collaborator(db_session, theirs, test_user)

        resp = await client.get("/api/projects", headers=get_auth_headers(test_user))
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json()] == [mine.id, theirs.id]

    async def test_owner_and_collaborator_sees_project_twice(self, client: AsyncClient, db_session, test_user):
        project = await make_project(db_session, test_user)
        await add_collaborator(db_session, project, test_user)
        resp = await client.get("/api/projects", headers=get_auth_headers(test_user))
        assert [p["id"] for p in resp.json()] == [project.id, project.id]

    async def test_get_project_with_tags(self, client: AsyncClient, test_user):
        headers = get_auth_headers(test_user)
        created = await client.post("/api/projects", json={"name": "T", "tags": ["ops"]}, headers=headers)
        resp = await client.get(f"/api/projects/{created.json()['id']}", headers=headers)
        assert resp.status_code == 200
        assert [t["name"] for t in resp.json()["tags"]] == ["ops"]

    async def test_stranger_gets_403(self, client: AsyncClient, db_session, test_user, other_user):
        project = await make_project(db_session, test_user)
        resp = await client.get(f"/api/projects/{project.id}", headers=get_auth_headers(other_user))
        assert resp.status_code == 403
        assert resp.json() == {"message": "Unauthorized access to project"}

    async def test_missing_project_404(self, client: AsyncClient, test_user):
        resp = await client.get("/api/projects/9999", headers=get_auth_headers(test_user))
        assert resp.status_code == 404
        assert resp.json() == {"message": "Project not found"}

    async def test_non_integer_id_is_400(self, client: AsyncClient, test_user):
        resp = await client.get("/api/projects/abc", headers=get_auth_headers(test_user))
        assert resp.status_code == 400


@pytest.mark.asyncio
class TestUpdateProject:
    async def test_owner_updates(self, client: AsyncClient, db_session, test_user):
        project = await make_project(db_session, test_user)
        resp = await client.patch(
            f"/api/projects/{project.id}",
            json={"status": "In Progress", "progress": 40},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "In Progress"
        assert resp.json()["progress"] == 40

    async def test_any_status_transition_allowed(self, client: AsyncClient, db_session, test_user):
        project = await make_project(db_session, test_user)
        headers = get_auth_headers(test_user)
        for status in ("Completed", "Planning", "Review"):
            resp = await client.patch(f"/api/projects/{project.id}", json={"status": status}, headers=headers)
            assert resp.json()["status"] == status

    async def test_null_name_ignored(self, client: AsyncClient, db_session, test_user):
        project = await make_project(db_session, test_user, name="Keep", description="old")
        resp = await client.patch(
            f"/api/projects/{project.id}",
            json={"name": None, "description": None},
            headers=get_auth_headers(test_user),
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Keep"
        assert resp.json()["description"] is None

    @pytest.mark.parametrize("role,expected", [
        ("editor", 200),
        ("member", 403),
        ("owner", 403),
        ("admin", 403),
    ])
    async def test_collaborator_roles(self, client: AsyncClient, db_session, test_user, other_user, role, expected):
        project = await make_project(db_session, test_user)
        await add_collaborator(db_session, project, other_user, role=role)
        headers = get_auth_headers(other_user)

        read = await client.get(f"/api/projects/{project.id}", headers=headers)
        assert read.status_code == 200

        resp = await client.patch(f"/api/projects/{project.id}", json={"name": "Renamed"}, headers=headers)
        assert resp.status_code == expected

    async def test_site_admin_is_not_project_editor(self, client: AsyncClient, db_session, test_user, admin_user):
        project = await make_project(db_session, test_user)
        resp = await client.patch(
            f"/api/projects/{project.id}", json={"name": "Hijack"}, headers=get_auth_headers(admin_user),
        )
        assert resp.status_code == 403


@pytest.mark.asyncio
class TestDeleteProject:
    async def test_owner_deletes_with_cascade(self, client: AsyncClient, test_user, pro_user, storage):
        headers = get_auth_headers(pro_user)
        project = (await client.post("/api/projects", json={"name": "Doomed", "tags": ["x"]}, headers=headers)).json()
        task = (await client.post(f"/api/projects/{project['id']}/tasks", json={"title": "T"}, headers=headers)).json()
        await client.post(
            f"/api/projects/{project['id']}/collaborators", json={"userId": test_user.id}, headers=headers,
        )

        resp = await client.delete(f"/api/projects/{project['id']}", headers=headers)
        assert resp.status_code == 204

        assert await storage.get_project(project["id"]) is None
        assert await storage.get_task(task["id"]) is None
        assert await storage.get_project_tags(project["id"]) == []
        assert await storage.get_project_collaborators(project["id"]) == []
        # The tag itself survives
        assert [t.name for t in await storage.list_tags()] == ["x"]

        logs = await storage.get_entity_activities("project", project["id"])
        assert [log.action for log in logs] == [
            "Project created", "Collaborator added", "Project deleted",
        ]

    async def test_editor_cannot_delete(self, client: AsyncClient, db_session, test_user, other_user):
        project = await make_project(db_session, test_user)
        await add_collaborator(db_session, project, other_user, role="editor")
        resp = await client.delete(f"/api/projects/{project.id}", headers=get_auth_headers(other_user))
        assert resp.status_code == 403
        assert resp.json() == {"message": "Only the project owner can delete it"}

    async def test_delete_missing(self, client: AsyncClient, test_user):
        resp = await client.delete("/api/projects/9999", headers=get_auth_headers(test_user))
        assert resp.status_code == 404
