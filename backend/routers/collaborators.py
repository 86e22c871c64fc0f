# routers/collaborators.py — Project membership management
import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import Field

from access import AccessGrant, project_access
from errors import NotFound, storage_errors
from schemas import ApiModel, CollaborationOut, CollaboratorOut
from storage import DatabaseStorage, get_storage

logger = logging.getLogger("projecthub.collaborators")

router = APIRouter(prefix="/api/projects/{project_id}/collaborators", tags=["Collaborators"])


class CollaboratorAdd(ApiModel):
    user_id: int
    # Free-form; only "editor" grants project updates and tagging
    role: str = Field(default="member", min_length=1)


@router.get("", response_model=List[CollaboratorOut])
async def list_collaborators(
    grant: AccessGrant = Depends(project_access("collaborators:list")),
    storage: DatabaseStorage = Depends(get_storage),
):
    with storage_errors("Failed to retrieve collaborators"):
        rows = await storage.get_project_collaborators(grant.project.id)
    return [
        CollaboratorOut(
            user_id=collab.user_id,
            role=collab.role,
            added_at=collab.added_at,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )
        for collab, user in rows
    ]


@router.post("", response_model=CollaborationOut, status_code=201)
async def add_collaborator(
    data: CollaboratorAdd,
    grant: AccessGrant = Depends(project_access("collaborators:add")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Add a collaborator (project owner on the pro plan or above)"""
    with storage_errors("Failed to add collaborator"):
        if await storage.get_user(data.user_id) is None:
            raise NotFound("User not found")
        collaboration = await storage.add_project_collaborator(
            grant.project.id, data.user_id, actor_id=grant.user.id, role=data.role,
        )
    logger.info(f"User {data.user_id} added to project {grant.project.id} as {data.role}")
    return collaboration


@router.delete("/{user_id}", status_code=204)
async def remove_collaborator(
    user_id: int,
    grant: AccessGrant = Depends(project_access("collaborators:remove")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Remove a collaborator (project owner only); absent members are a no-op"""
    with storage_errors("Failed to remove collaborator"):
        await storage.remove_project_collaborator(grant.project.id, user_id, actor_id=grant.user.id)
