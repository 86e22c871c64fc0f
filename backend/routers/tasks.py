# routers/tasks.py — Tasks within projects, plus the caller's assigned tasks
import logging
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import Field

from access import AccessGrant, project_access, task_access
from auth import get_current_user, CurrentUser
from errors import NotFound, storage_errors
from models import TaskStatus
from routers.projects import patch_fields
from schemas import ApiModel, TaskOut
from storage import DatabaseStorage, get_storage

logger = logging.getLogger("projecthub.tasks")

router = APIRouter(prefix="/api", tags=["Tasks"])


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(ApiModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[int] = None


class TaskUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[int] = None


async def _check_assignee(storage: DatabaseStorage, assignee_id: Optional[int]) -> None:
    if assignee_id is not None and await storage.get_user(assignee_id) is None:
        raise NotFound("Assignee not found")


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("/projects/{project_id}/tasks", response_model=List[TaskOut])
async def list_project_tasks(
    grant: AccessGrant = Depends(project_access("tasks:list")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Tasks of a project, newest first"""
    with storage_errors("Failed to retrieve tasks"):
        return await storage.get_project_tasks(grant.project.id)


@router.post("/projects/{project_id}/tasks", response_model=TaskOut, status_code=201)
async def create_task(
    data: TaskCreate,
    grant: AccessGrant = Depends(project_access("tasks:create")),
    storage: DatabaseStorage = Depends(get_storage),
):
    with storage_errors("Failed to create task"):
        await _check_assignee(storage, data.assigned_to_id)
        task = await storage.create_task(grant.project.id, grant.user.id, data.model_dump())
    logger.info(f"Task {task.id} created in project {grant.project.id} by user {grant.user.id}")
    return task


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(
    data: TaskUpdate,
    grant: AccessGrant = Depends(task_access("task:update")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Update a task; moving it to Completed stamps completedAt once"""
    changes = patch_fields(data, non_nullable=("title", "status"))
    if not changes:
        return grant.task
    with storage_errors("Failed to update task"):
        await _check_assignee(storage, changes.get("assigned_to_id"))
        task = await storage.update_task(grant.task.id, changes, actor_id=grant.user.id)
    if task is None:
        raise NotFound("Task not found")
    return task


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(
    grant: AccessGrant = Depends(task_access("task:delete")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Delete a task (project owner only)"""
    with storage_errors("Failed to delete task"):
        await storage.delete_task(grant.task.id, actor_id=grant.user.id)


@router.get("/my-tasks", response_model=List[TaskOut])
async def my_tasks(
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Tasks assigned to the caller across all projects"""
    with storage_errors("Failed to retrieve assigned tasks"):
        return await storage.get_tasks_assigned_to(user.id)
