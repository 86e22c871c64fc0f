# routers/projects.py — Project CRUD with plan-based creation limits
import logging
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import Field, field_validator

from access import AccessGrant, project_access
from auth import get_current_user, CurrentUser
from errors import NotFound, storage_errors
from models import ProjectStatus
from schemas import ApiModel, ProjectOut, ProjectDetailOut, TagOut
from storage import DatabaseStorage, get_storage

logger = logging.getLogger("projecthub.projects")

router = APIRouter(prefix="/api/projects", tags=["Projects"])

# Columns that may not be cleared with an explicit null
NON_NULLABLE_FIELDS = ("name", "status", "progress")


# ============================================================
# SCHEMAS
# ============================================================

class ProjectCreate(ApiModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    progress: int = 0
    tags: List[str] = []

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: List[str]) -> List[str]:
        cleaned = []
        for name in (t.strip() for t in v):
            if name and name not in cleaned:
                cleaned.append(name)
        return cleaned


class ProjectUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    progress: Optional[int] = None


def patch_fields(model: ApiModel, non_nullable=NON_NULLABLE_FIELDS) -> dict:
    """Fields the client actually sent, minus nulls for required columns."""
    changes = model.model_dump(exclude_unset=True)
    return {k: v for k, v in changes.items() if v is not None or k not in non_nullable}


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("", response_model=List[ProjectOut])
async def list_projects(
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Projects the caller owns, then projects they collaborate on"""
    with storage_errors("Failed to retrieve projects"):
        return await storage.get_projects_visible_to(user.id)


@router.post("", response_model=ProjectOut, status_code=201)
async def create_project(
    data: ProjectCreate,
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Create a project owned by the caller, within their plan's project limit"""
    with storage_errors("Failed to create project"):
        project = await storage.create_project(
            user.id,
            data.name,
            description=data.description,
            status=data.status,
            progress=data.progress,
            tags=data.tags,
        )
    logger.info(f"Project {project.id} created by user {user.id}")
    return project


@router.get("/{project_id}", response_model=ProjectDetailOut)
async def get_project(
    grant: AccessGrant = Depends(project_access("project:read")),
    storage: DatabaseStorage = Depends(get_storage),
):
    with storage_errors("Failed to retrieve project"):
        tags = await storage.get_project_tags(grant.project.id)
    detail = ProjectDetailOut.model_validate(grant.project)
    detail.tags = [TagOut.model_validate(t) for t in tags]
    return detail


@router.patch("/{project_id}", response_model=ProjectOut)
async def update_project(
    data: ProjectUpdate,
    grant: AccessGrant = Depends(project_access("project:update")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Update project fields (owner or editor collaborator)"""
    changes = patch_fields(data)
    if not changes:
        return grant.project
    with storage_errors("Failed to update project"):
        project = await storage.update_project(grant.project.id, changes, actor_id=grant.user.id)
    if project is None:
        raise NotFound("Project not found")
    return project


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    grant: AccessGrant = Depends(project_access("project:delete")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Delete a project with its tasks, tags and collaborators (owner only)"""
    with storage_errors("Failed to delete project"):
        await storage.delete_project(grant.project.id, actor_id=grant.user.id)
    logger.info(f"Project {grant.project.id} deleted by user {grant.user.id}")
