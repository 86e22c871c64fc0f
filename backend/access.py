# access.py — Declarative authorization for ProjectHub
"""
Every guarded endpoint names one entry of ``POLICIES``. A policy states which
resource the route acts on, the relationship the caller must have with it,
and any required role or minimum plan. ``evaluate`` applies an entry in a fixed
order and stops at the first failure:

    authentication -> role -> plan -> resource lookup (404) -> relationship

Authentication itself is the ``get_current_user`` dependency.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict

from fastapi import Depends

from auth import CurrentUser, get_current_user
from errors import Forbidden, NotFound, UpgradeRequired
from models import Project, ProjectCollaborator, Task, UserRole, SubscriptionPlan
from plans import meets_plan
from storage import DatabaseStorage, get_storage

EDITOR_ROLE = "editor"


class Relation(str, Enum):
    NONE = "none"                # no resource relationship required
    MEMBER = "member"            # owner or any collaborator
    EDITOR = "editor"            # owner or a collaborator whose role is exactly "editor"
    PARTICIPANT = "participant"  # owner, any collaborator, the task's creator or assignee
    OWNER = "owner"              # owner only


@dataclass(frozen=True)
class Policy:
    resource: Optional[str] = None  # "project", "task" or None
    relation: Relation = Relation.NONE
    role: Optional[UserRole] = None
    min_plan: Optional[SubscriptionPlan] = None
    message: str = "Forbidden"


ADMIN_ONLY = Policy(role=UserRole.ADMIN, message="Admin access required")

POLICIES: Dict[str, Policy] = {
    # Users & admin
    "users:list": ADMIN_ONLY,
    "users:read": ADMIN_ONLY,
    "users:update_plan": ADMIN_ONLY,
    "users:update_role": ADMIN_ONLY,
    "analytics:admin": ADMIN_ONLY,

    # Projects
    "project:read": Policy("project", Relation.MEMBER, message="Unauthorized access to project"),
    "project:update": Policy("project", Relation.EDITOR, message="Unauthorized to update this project"),
    "project:delete": Policy("project", Relation.OWNER, message="Only the project owner can delete it"),

    # Tasks
    "tasks:list": Policy("project", Relation.MEMBER, message="Unauthorized access to project"),
    "tasks:create": Policy("project", Relation.MEMBER, message="Unauthorized to add tasks to this project"),
    "task:update": Policy("task", Relation.PARTICIPANT, message="Unauthorized to update this task"),
    "task:delete": Policy("task", Relation.OWNER, message="Only the project owner can delete tasks"),

    # Collaborators
    "collaborators:list": Policy("project", Relation.MEMBER, message="Unauthorized access to project"),
    "collaborators:add": Policy(
        "project", Relation.OWNER, min_plan=SubscriptionPlan.PRO,
        message="Only the project owner can add collaborators",
    ),
    "collaborators:remove": Policy(
        "project", Relation.OWNER, message="Only the project owner can remove collaborators",
    ),

    # Tags
    "project_tags:add": Policy("project", Relation.EDITOR, message="Unauthorized to add tags to this project"),
}


@dataclass
class AccessGrant:
    """What a passed policy loaded on the way: the caller and the resource."""

    user: CurrentUser
    project: Optional[Project] = None
    task: Optional[Task] = None
    collaboration: Optional[ProjectCollaborator] = None


# ============================================================
# INDIVIDUAL CHECKS
# ============================================================

def check_role(policy: Policy, user: CurrentUser) -> None:
    if policy.role is not None and UserRole(user.role) != policy.role:
        raise Forbidden(policy.message)


def check_plan(policy: Policy, user: CurrentUser) -> None:
    if policy.min_plan is not None and not meets_plan(policy.min_plan, user.plan):
        raise UpgradeRequired(policy.min_plan.value)


def relation_holds(
    relation: Relation,
    user_id: int,
    project: Project,
    collaboration: Optional[ProjectCollaborator] = None,
    task: Optional[Task] = None,
) -> bool:
    if relation == Relation.NONE:
        return True
    if project.user_id == user_id:
        return True
    if relation == Relation.OWNER:
        return False
    if relation == Relation.EDITOR:
        # "owner" or "admin" collaborator roles do not count as editor
        return collaboration is not None and collaboration.role == EDITOR_ROLE
    if relation == Relation.MEMBER:
        return collaboration is not None
    if relation == Relation.PARTICIPANT:
        if collaboration is not None:
            return True
        return task is not None and user_id in (task.created_by_id, task.assigned_to_id)
    return False


def check_relation(policy: Policy, grant: AccessGrant) -> None:
    if not relation_holds(policy.relation, grant.user.id, grant.project, grant.collaboration, grant.task):
        raise Forbidden(policy.message)


# ============================================================
# EVALUATION
# ============================================================

async def evaluate(
    action: str,
    user: CurrentUser,
    storage: DatabaseStorage,
    resource_id: Optional[int] = None,
) -> AccessGrant:
    """Apply ``POLICIES[action]`` for ``user`` against the resource ``resource_id``."""
    policy = POLICIES[action]
    grant = AccessGrant(user=user)

    check_role(policy, user)
    check_plan(policy, user)

    if policy.resource is None:
        return grant

    if policy.resource == "task":
        grant.task = await storage.get_task(resource_id)
        if grant.task is None:
            raise NotFound("Task not found")
        resource_id = grant.task.project_id

    grant.project = await storage.get_project(resource_id)
    if grant.project is None:
        raise NotFound("Project not found")

    if grant.project.user_id != user.id and policy.relation not in (Relation.NONE, Relation.OWNER):
        grant.collaboration = await storage.get_collaboration(grant.project.id, user.id)

    check_relation(policy, grant)
    return grant


# ============================================================
# FASTAPI DEPENDENCY FACTORIES
# ============================================================

def authorize(action: str):
    """Dependency factory for policies that do not name a resource"""
    async def _check(
        user: CurrentUser = Depends(get_current_user),
        storage: DatabaseStorage = Depends(get_storage),
    ) -> CurrentUser:
        await evaluate(action, user, storage)
        return user
    return _check


def project_access(action: str):
    """Dependency factory for routes with a ``{project_id}`` path parameter"""
    async def _check(
        project_id: int,
        user: CurrentUser = Depends(get_current_user),
        storage: DatabaseStorage = Depends(get_storage),
    ) -> AccessGrant:
        return await evaluate(action, user, storage, project_id)
    return _check


def task_access(action: str):
    """Dependency factory for routes with a ``{task_id}`` path parameter"""
    async def _check(
        task_id: int,
        user: CurrentUser = Depends(get_current_user),
        storage: DatabaseStorage = Depends(get_storage),
    ) -> AccessGrant:
        return await evaluate(action, user, storage, task_id)
    return _check
