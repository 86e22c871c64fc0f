# storage.py — Storage gateway for ProjectHub
"""
The single point of truth for reading and writing the data model.

Every method opens its own session from the injected session factory, so one
``DatabaseStorage`` is built at start-up and shared by all requests. Writes that
represent a user action append an activity log entry once the primary write
has committed; a failed log write is reported and never undoes the primary.
"""
import logging
import math
from typing import Optional, List, Dict, Any, Iterable, Tuple

from fastapi import Request
from sqlalchemy import select, func, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from errors import Conflict, NotFound, ProjectLimitReached
from models import (
    User, Project, Task, Tag, ProjectTag, ProjectCollaborator, ActivityLog, RevokedToken,
    UserRole, SubscriptionPlan, ProjectStatus, TaskStatus, utcnow,
)
from plans import project_limit

logger = logging.getLogger("projecthub.storage")

RECENT_SIGNUPS_LIMIT = 5


class DatabaseStorage:
    """Storage gateway backed by an async SQLAlchemy session factory"""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))

    # ============================================================
    # ACTIVITY LOGS
    # ============================================================

    async def log_activity(
        self, action: str, entity_type: str, entity_id: int, user_id: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        async with self._session_factory() as session:
            entry = ActivityLog(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                extra_data=metadata,
            )
            session.add(entry)
            await session.commit()
            return entry

    async def _record_activity(
        self, action: str, entity_type: str, entity_id: int, user_id: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            await self.log_activity(action, entity_type, entity_id, user_id, metadata)
        except SQLAlchemyError:
            logger.exception(
                "Failed to record activity %r for %s %s (user %s)",
                action, entity_type, entity_id, user_id,
            )

    async def get_recent_activities(self, user_id: int, limit: int = 10) -> List[ActivityLog]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ActivityLog)
                .where(ActivityLog.user_id == user_id)
                .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_entity_activities(self, entity_type: str, entity_id: int) -> List[ActivityLog]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ActivityLog)
                .where(ActivityLog.entity_type == entity_type, ActivityLog.entity_id == entity_id)
                .order_by(ActivityLog.id)
            )
            return list(result.scalars().all())

    # ============================================================
    # USERS
    # ============================================================

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self._session_factory() as session:
            return await session.get(User, user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        async with self._session_factory() as session:
            return await session.scalar(select(User).where(User.username == username))

    async def create_user(
        self, username: str, password_hash: str, *,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: UserRole = UserRole.USER,
        plan: SubscriptionPlan = SubscriptionPlan.FREE,
    ) -> User:
        async with self._session_factory() as session:
            user = User(
                username=username,
                password_hash=password_hash,
                email=email,
                first_name=first_name,
                last_name=last_name,
                role=role,
                plan=plan,
            )
            session.add(user)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise Conflict("Username already exists")

        await self._record_activity("User registered", "user", user.id, user.id)
        return user

    async def list_users(self) -> List[User]:
        async with self._session_factory() as session:
            result = await session.execute(select(User).order_by(User.id))
            return list(result.scalars().all())

    async def get_users_by_plan(self, plan: SubscriptionPlan) -> List[User]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User).where(User.plan == SubscriptionPlan(plan)).order_by(User.id)
            )
            return list(result.scalars().all())

    async def _update_user(
        self, user_id: int, changes: Dict[str, Any], actor_id: int, action: str,
    ) -> Optional[User]:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                return None
            for attr, value in changes.items():
                setattr(user, attr, value)
            await session.commit()

        await self._record_activity(
            action, "user", user_id, actor_id,
            {k: getattr(v, "value", v) for k, v in changes.items()},
        )
        return user

    async def update_user_plan(self, user_id: int, plan: SubscriptionPlan, actor_id: int) -> Optional[User]:
        return await self._update_user(
            user_id, {"plan": SubscriptionPlan(plan)}, actor_id, "Plan updated",
        )

    async def update_user_role(self, user_id: int, role: UserRole, actor_id: int) -> Optional[User]:
        return await self._update_user(
            user_id, {"role": UserRole(role)}, actor_id, "Role updated",
        )

    async def ensure_admin_user(
        self, username: str, password_hash: str, email: Optional[str] = None,
    ) -> Tuple[User, bool]:
        """Create the bootstrap admin unless a user with that name exists.

        Safe to run repeatedly and from several processes at once. Returns the
        user and whether this call created it.
        """
        existing = await self.get_user_by_username(username)
        if existing is not None:
            return existing, False

        async with self._session_factory() as session:
            user = User(
                username=username,
                password_hash=password_hash,
                email=email,
                first_name="Admin",
                last_name="User",
                role=UserRole.ADMIN,
                plan=SubscriptionPlan.ENTERPRISE,
            )
            session.add(user)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                user = None

        if user is None:
            # Another seeder got there first
            return await self.get_user_by_username(username), False

        await self._record_activity("Admin user seeded", "user", user.id, user.id)
        return user, True

    # ============================================================
    # TOKEN REVOCATION
    # ============================================================

    async def revoke_token(self, jti: str, user_id: int, expires_at) -> None:
        async with self._session_factory() as session:
            session.add(RevokedToken(jti=jti, user_id=user_id, expires_at=expires_at))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug("Token %s was already revoked", jti)

    async def is_token_revoked(self, jti: str) -> bool:
        async with self._session_factory() as session:
            found = await session.scalar(select(RevokedToken.id).where(RevokedToken.jti == jti))
            return found is not None

    # ============================================================
    # PROJECTS
    # ============================================================

    async def get_projects_visible_to(self, user_id: int) -> List[Project]:
        """Owned projects followed by collaborated ones.

        A user who is both owner and collaborator of a project sees it twice.
        """
        async with self._session_factory() as session:
            owned = await session.execute(
                select(Project).where(Project.user_id == user_id).order_by(Project.id)
            )
            shared = await session.execute(
                select(Project)
                .join(ProjectCollaborator, ProjectCollaborator.project_id == Project.id)
                .where(ProjectCollaborator.user_id == user_id)
                .order_by(Project.id)
            )
            return [*owned.scalars().all(), *shared.scalars().all()]

    async def count_owned_projects(self, user_id: int) -> int:
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count(Project.id)).where(Project.user_id == user_id)
            )
            return count or 0

    async def get_project(self, project_id: int) -> Optional[Project]:
        async with self._session_factory() as session:
            return await session.get(Project, project_id)

    async def create_project(
        self, owner_id: int, name: str, *,
        description: Optional[str] = None,
        status: Optional[ProjectStatus] = None,
        progress: int = 0,
        tags: Iterable[str] = (),
    ) -> Project:
        """Insert a project if the owner is under their plan's project limit.

        The owner row is locked for the duration of the count and the insert,
        so concurrent creations by one owner are serialised.
        """
        async with self._session_factory() as session:
            async with session.begin():
                owner = await session.scalar(
                    select(User).where(User.id == owner_id).with_for_update()
                )
                if owner is None:
                    raise NotFound("User not found")

                limit = project_limit(owner.plan)
                owned = await session.scalar(
                    select(func.count(Project.id)).where(Project.user_id == owner_id)
                ) or 0
                if owned >= limit:
                    raise ProjectLimitReached(SubscriptionPlan(owner.plan).value, limit)

                project = Project(
                    name=name,
                    description=description,
                    status=status or ProjectStatus.PLANNING,
                    progress=progress,
                    user_id=owner_id,
                )
                session.add(project)

        for tag_name in tags:
            tag = await self.get_or_create_tag(tag_name)
            await self.assign_tag_to_project(project.id, tag.id)

        await self._record_activity("Project created", "project", project.id, owner_id)
        return project

    async def update_project(self, project_id: int, changes: Dict[str, Any], actor_id: int) -> Optional[Project]:
        async with self._session_factory() as session:
            project = await session.get(Project, project_id)
            if project is None:
                return None
            for attr, value in changes.items():
                setattr(project, attr, value)
            await session.commit()

        await self._record_activity("Project updated", "project", project_id, actor_id)
        return project

    async def delete_project(self, project_id: int, actor_id: int) -> bool:
        """Delete a project with its tasks, tag links and collaborators.

        Activity logs that mention the project are kept.
        """
        async with self._session_factory() as session:
            project = await session.get(Project, project_id)
            if project is None:
                return False
            await session.delete(project)
            await session.commit()

        await self._record_activity("Project deleted", "project", project_id, actor_id)
        return True

    # ============================================================
    # COLLABORATORS
    # ============================================================

    async def get_collaboration(self, project_id: int, user_id: int) -> Optional[ProjectCollaborator]:
        async with self._session_factory() as session:
            return await session.get(ProjectCollaborator, (project_id, user_id))

    async def get_project_collaborators(self, project_id: int) -> List[Tuple[ProjectCollaborator, User]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProjectCollaborator, User)
                .join(User, User.id == ProjectCollaborator.user_id)
                .where(ProjectCollaborator.project_id == project_id)
                .order_by(ProjectCollaborator.added_at, User.id)
            )
            return [tuple(row) for row in result.all()]

    async def add_project_collaborator(
        self, project_id: int, user_id: int, actor_id: int, role: str = "member",
    ) -> ProjectCollaborator:
        async with self._session_factory() as session:
            collaboration = ProjectCollaborator(project_id=project_id, user_id=user_id, role=role)
            session.add(collaboration)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise Conflict("User is already a collaborator on this project")

        await self._record_activity(
            "Collaborator added", "project", project_id, actor_id,
            {"collaboratorId": user_id, "role": role},
        )
        return collaboration

    async def remove_project_collaborator(self, project_id: int, user_id: int, actor_id: int) -> bool:
        async with self._session_factory() as session:
            collaboration = await session.get(ProjectCollaborator, (project_id, user_id))
            if collaboration is None:
                return False
            await session.delete(collaboration)
            await session.commit()

        await self._record_activity(
            "Collaborator removed", "project", project_id, actor_id,
            {"collaboratorId": user_id},
        )
        return True

    # ============================================================
    # TASKS
    # ============================================================

    async def get_project_tasks(self, project_id: int) -> List[Task]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Task)
                .where(Task.project_id == project_id)
                .order_by(Task.created_at.desc(), Task.id.desc())
            )
            return list(result.scalars().all())

    async def get_task(self, task_id: int) -> Optional[Task]:
        async with self._session_factory() as session:
            return await session.get(Task, task_id)

    async def get_tasks_assigned_to(self, user_id: int) -> List[Task]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Task)
                .where(Task.assigned_to_id == user_id)
                .order_by(Task.created_at.desc(), Task.id.desc())
            )
            return list(result.scalars().all())

    async def create_task(self, project_id: int, created_by_id: int, fields: Dict[str, Any]) -> Task:
        async with self._session_factory() as session:
            task = Task(project_id=project_id, created_by_id=created_by_id, **fields)
            if task.status == TaskStatus.COMPLETED:
                task.completed_at = utcnow()
            session.add(task)
            await session.commit()

        await self._record_activity("Task created", "task", task.id, created_by_id)
        return task

    async def update_task(self, task_id: int, changes: Dict[str, Any], actor_id: int) -> Optional[Task]:
        """Apply a patch; moving to Completed stamps completed_at once.

        Moving away from Completed leaves completed_at as it was.
        """
        async with self._session_factory() as session:
            task = await session.get(Task, task_id)
            if task is None:
                return None
            for attr, value in changes.items():
                setattr(task, attr, value)
            if changes.get("status") == TaskStatus.COMPLETED and task.completed_at is None:
                task.completed_at = utcnow()
            await session.commit()

        await self._record_activity("Task updated", "task", task_id, actor_id)
        return task

    async def delete_task(self, task_id: int, actor_id: int) -> bool:
        async with self._session_factory() as session:
            task = await session.get(Task, task_id)
            if task is None:
                return False
            await session.delete(task)
            await session.commit()

        await self._record_activity("Task deleted", "task", task_id, actor_id)
        return True

    # ============================================================
    # TAGS
    # ============================================================

    async def list_tags(self) -> List[Tag]:
        async with self._session_factory() as session:
            result = await session.execute(select(Tag).order_by(Tag.name))
            return list(result.scalars().all())

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        async with self._session_factory() as session:
            return await session.get(Tag, tag_id)

    async def create_tag(self, name: str) -> Tag:
        async with self._session_factory() as session:
            tag = Tag(name=name)
            session.add(tag)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise Conflict("Tag already exists")
            return tag

    async def get_or_create_tag(self, name: str) -> Tag:
        """Return the tag called ``name``, creating it if needed.

        The unique index on tags.name decides concurrent creations: the loser
        rolls back and reads the winner's row.
        """
        async with self._session_factory() as session:
            tag = await session.scalar(select(Tag).where(Tag.name == name))
            if tag is not None:
                return tag

            tag = Tag(name=name)
            session.add(tag)
            try:
                await session.commit()
                return tag
            except IntegrityError:
                await session.rollback()

            tag = await session.scalar(select(Tag).where(Tag.name == name))
            if tag is None:
                raise NotFound("Tag not found")
            return tag

    async def assign_tag_to_project(self, project_id: int, tag_id: int) -> bool:
        """Link a tag to a project; returns False when the link already existed."""
        async with self._session_factory() as session:
            if await session.get(ProjectTag, (project_id, tag_id)) is not None:
                return False
            session.add(ProjectTag(project_id=project_id, tag_id=tag_id))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
            return True

    async def get_project_tags(self, project_id: int) -> List[Tag]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Tag)
                .join(ProjectTag, ProjectTag.tag_id == Tag.id)
                .where(ProjectTag.project_id == project_id)
                .order_by(Tag.name)
            )
            return list(result.scalars().all())

    # ============================================================
    # ANALYTICS
    # ============================================================

    async def get_user_stats(self, user_id: int) -> Dict[str, int]:
        """Counts over the projects a user owns (collaborations excluded)"""
        async with self._session_factory() as session:
            total_projects = await session.scalar(
                select(func.count(Project.id)).where(Project.user_id == user_id)
            ) or 0

            active_tasks = await session.scalar(
                select(func.count(Task.id))
                .select_from(Task)
                .join(Project, Task.project_id == Project.id)
                .where(Project.user_id == user_id, Task.status != TaskStatus.COMPLETED)
            ) or 0

            total_tasks, completed_tasks = (await session.execute(
                select(func.count(Task.id), func.count(Task.completed_at))
                .select_from(Task)
                .join(Project, Task.project_id == Project.id)
                .where(Project.user_id == user_id)
            )).one()

        completion_rate = 0
        if total_tasks:
            # Round half up
            completion_rate = math.floor(completed_tasks * 100 / total_tasks + 0.5)

        return {
            "total_projects": total_projects,
            "active_tasks_count": active_tasks,
            "completion_rate": completion_rate,
        }

    async def get_admin_overview(self) -> Dict[str, Any]:
        async with self._session_factory() as session:
            plan_rows = await session.execute(
                select(User.plan, func.count(User.id)).group_by(User.plan)
            )
            by_plan = {SubscriptionPlan(p): c for p, c in plan_rows.all()}

            project_rows = await session.execute(
                select(Project.status, func.count(Project.id)).group_by(Project.status)
            )
            by_project_status = {ProjectStatus(s): c for s, c in project_rows.all()}

            task_rows = await session.execute(
                select(Task.status, func.count(Task.id)).group_by(Task.status)
            )
            by_task_status = {TaskStatus(s): c for s, c in task_rows.all()}

            recent = await session.execute(
                select(User)
                .order_by(User.created_at.desc(), User.id.desc())
                .limit(RECENT_SIGNUPS_LIMIT)
            )
            recent_signups = list(recent.scalars().all())

        return {
            "users": {
                "total": sum(by_plan.values()),
                "free": by_plan.get(SubscriptionPlan.FREE, 0),
                "pro": by_plan.get(SubscriptionPlan.PRO, 0),
                "enterprise": by_plan.get(SubscriptionPlan.ENTERPRISE, 0),
            },
            "projects": {
                "total": sum(by_project_status.values()),
                "planning": by_project_status.get(ProjectStatus.PLANNING, 0),
                "in_progress": by_project_status.get(ProjectStatus.IN_PROGRESS, 0),
                "review": by_project_status.get(ProjectStatus.REVIEW, 0),
                "completed": by_project_status.get(ProjectStatus.COMPLETED, 0),
            },
            "tasks": {
                "total": sum(by_task_status.values()),
                "pending": by_task_status.get(TaskStatus.PENDING, 0),
                "in_progress": by_task_status.get(TaskStatus.IN_PROGRESS, 0),
                "completed": by_task_status.get(TaskStatus.COMPLETED, 0),
                "blocked": by_task_status.get(TaskStatus.BLOCKED, 0),
            },
            "recent_signups": recent_signups,
        }


# ============================================================
# FASTAPI DEPENDENCY
# ============================================================

def get_storage(request: Request) -> DatabaseStorage:
    """The gateway built by create_app(); tests construct their own."""
    return request.app.state.storage
