# tests/test_collaborators.py — Project membership tests
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers, make_project, add_collaborator


@pytest.mark.asyncio
async def test_pro_owner_adds_collaborator(client: AsyncClient, db_session, pro_user, other_user, storage):
    project = await make_project(db_session, pro_user)
    resp = await client.post(
        f"/api/projects/{project.id}/collaborators",
        json={"userId": other_user.id, "role": "editor"},
        headers=get_auth_headers(pro_user),
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["projectId"] == project.id
    assert data["userId"] == other_user.id
    assert data["role"] == "editor"

    logs = await storage.get_entity_activities("project", project.id)
    assert logs[-1].action == "Collaborator added"
    assert logs[-1].extra_data == {"collaboratorId": other_user.id, "role": "editor"}


@pytest.mark.asyncio
async def test_default_role_is_member(client: AsyncClient, db_session, pro_user, other_user):
    project = await make_project(db_session, pro_user)
    resp = await client.post(
        f"/api/projects/{project.id}/collaborators",
        json={"user_id": other_user.id},
        headers=get_auth_headers(pro_user),
    )
    assert resp.status_code == 201
    assert resp.json()["role"] == "member"


@pytest.mark.asyncio
async def test_free_owner_must_upgrade(client: AsyncClient, db_session, test_user, other_user):
    project = await make_project(db_session, test_user)
    resp = await client.post(
        f"/api/projects/{project.id}/collaborators",
        json={"userId": other_user.id},
        headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 403
    assert resp.json() == {"message": "Upgrade required", "requiredPlan": "pro"}


@pytest.mark.asyncio
async def test_pro_non_owner_cannot_add(client: AsyncClient, db_session, test_user, pro_user, other_user):
    project = await make_project(db_session, test_user)
    await add_collaborator(db_session, project, pro_user, role="editor")
    resp = await client.post(
        f"/api/projects/{project.id}/collaborators",
        json={"userId": other_user.id},
        headers=get_auth_headers(pro_user),
    )
    assert resp.status_code == 403
    assert resp.json() == {"message": "Only the project owner can add collaborators"}


@pytest.mark.asyncio
async def test_add_unknown_user(client: AsyncClient, db_session, pro_user):
    project = await make_project(db_session, pro_user)
    resp = await client.post(
        f"/api/projects/{project.id}/collaborators",
        json={"userId": 9999},
        headers=get_auth_headers(pro_user),
    )
    assert resp.status_code == 404
    assert resp.json() == {"message": "User not found"}


@pytest.mark.asyncio
async def test_add_twice_conflicts(client: AsyncClient, db_session, pro_user, other_user):
    project = await make_project(db_session, pro_user)
    headers = get_auth_headers(pro_user)
    body = {"userId": other_user.id}
    assert (await client.post(f"/api/projects/{project.id}/collaborators", json=body, headers=headers)).status_code == 201
    resp = await client.post(f"/api/projects/{project.id}/collaborators", json=body, headers=headers)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_list_collaborators(client: AsyncClient, db_session, test_user, other_user, pro_user):
    project = await make_project(db_session, test_user)
    await add_collaborator(db_session, project, other_user, role="member")

    # Visible to members, with profile fields but no credentials
    resp = await client.get(f"/api/projects/{project.id}/collaborators", headers=get_auth_headers(other_user))
    assert resp.status_code == 200
    data = resp.json()
    assert len(data) == 1
    assert data[0]["userId"] == other_user.id
    assert data[0]["username"] == "carol"
    assert data[0]["role"] == "member"
    assert "password" not in data[0]

    resp = await client.get(f"/api/projects/{project.id}/collaborators", headers=get_auth_headers(pro_user))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_owner_removes_collaborator(client: AsyncClient, db_session, test_user, other_user, storage):
    project = await make_project(db_session, test_user)
    await add_collaborator(db_session, project, other_user)

    resp = await client.delete(
        f"/api/projects/{project.id}/collaborators/{other_user.id}", headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 204
    assert await storage.get_collaboration(project.id, other_user.id) is None

    # Access is gone immediately
    resp = await client.get(f"/api/projects/{project.id}", headers=get_auth_headers(other_user))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_remove_absent_collaborator_is_noop(client: AsyncClient, db_session, test_user, other_user, storage):
    project = await make_project(db_session, test_user)
    resp = await client.delete(
        f"/api/projects/{project.id}/collaborators/{other_user.id}", headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 204
    assert await storage.get_entity_activities("project", project.id) == []


@pytest.mark.asyncio
async def test_collaborator_cannot_remove_others(client: AsyncClient, db_session, test_user, other_user, pro_user):
    project = await make_project(db_session, test_user)
    await add_collaborator(db_session, project, other_user, role="editor")
    await add_collaborator(db_session, project, pro_user)

    resp = await client.delete(
        f"/api/projects/{project.id}/collaborators/{pro_user.id}", headers=get_auth_headers(other_user),
    )
    assert resp.status_code == 403
    assert resp.json() == {"message": "Only the project owner can remove collaborators"}
