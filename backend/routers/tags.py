# routers/tags.py — Global tag catalogue and project tagging
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import Field, field_validator, model_validator

from access import AccessGrant, project_access
from auth import get_current_user, CurrentUser
from errors import NotFound, storage_errors
from schemas import ApiModel, TagOut
from storage import DatabaseStorage, get_storage

router = APIRouter(prefix="/api", tags=["Tags"])


class TagCreate(ApiModel):
    name: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Tag name cannot be blank")
        return v


class ProjectTagAdd(ApiModel):
    tag_id: Optional[int] = None
    tag_name: Optional[str] = None

    @model_validator(mode="after")
    def require_tag_reference(self):
        if self.tag_id is None and not (self.tag_name or "").strip():
            raise ValueError("Either tagId or tagName is required")
        return self


@router.get("/tags", response_model=List[TagOut])
async def list_tags(
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    with storage_errors("Failed to retrieve tags"):
        return await storage.list_tags()


@router.post("/tags", response_model=TagOut, status_code=201)
async def create_tag(
    data: TagCreate,
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    with storage_errors("Failed to create tag"):
        return await storage.create_tag(data.name)


@router.post("/projects/{project_id}/tags", response_model=List[TagOut], status_code=201)
async def add_project_tag(
    data: ProjectTagAdd,
    grant: AccessGrant = Depends(project_access("project_tags:add")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Attach an existing tag by id, or a tag by name (created if new).

    Returns the project's tags after the change.
    """
    with storage_errors("Failed to add tag to project"):
        if data.tag_id is not None:
            tag = await storage.get_tag(data.tag_id)
            if tag is None:
                raise NotFound("Tag not found")
        else:
            tag = await storage.get_or_create_tag(data.tag_name.strip())

        await storage.assign_tag_to_project(grant.project.id, tag.id)
        return await storage.get_project_tags(grant.project.id)
