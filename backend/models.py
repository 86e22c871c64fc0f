# models.py — Database models for ProjectHub
# - Integer primary keys
# - Two-tier user roles (admin, user) and three subscription plans
# - Projects own tasks, tags (via project_tags) and collaborators; all cascade
# - Activity logs are append-only and deliberately not tied to project rows

from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Integer, Text,
    Enum as SQLEnum, ForeignKey, Index, TypeDecorator,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps, also on backends that store them naive (SQLite)"""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, PyEnum):
    USER = "user"
    ADMIN = "admin"


class SubscriptionPlan(str, PyEnum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class ProjectStatus(str, PyEnum):
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    REVIEW = "Review"
    COMPLETED = "Completed"


class TaskStatus(str, PyEnum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    BLOCKED = "Blocked"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column("password", String, nullable=False)
    email = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    role = Column(
        SQLEnum(UserRole, name="user_role", values_callable=_enum_values),
        default=UserRole.USER, nullable=False, index=True,
    )
    plan = Column(
        SQLEnum(SubscriptionPlan, name="subscription_plan", values_callable=_enum_values),
        default=SubscriptionPlan.FREE, nullable=False, index=True,
    )
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, index=True)

    # Relationships
    projects = relationship(
        "Project", back_populates="owner",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    collaborations = relationship(
        "ProjectCollaborator", back_populates="user",
        cascade="all, delete-orphan", passive_deletes=True,
    )


# ============================================================
# PROJECTS
# ============================================================

class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        SQLEnum(ProjectStatus, name="project_status", values_callable=_enum_values),
        default=ProjectStatus.PLANNING, nullable=False, index=True,
    )
    progress = Column(Integer, default=0, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Relationships
    owner = relationship("User", back_populates="projects")
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")
    project_tags = relationship("ProjectTag", back_populates="project", cascade="all, delete-orphan")
    collaborators = relationship("ProjectCollaborator", back_populates="project", cascade="all, delete-orphan")


# ============================================================
# TAGS
# ============================================================

class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)

    project_tags = relationship("ProjectTag", back_populates="tag", cascade="all, delete-orphan")


class ProjectTag(Base):
    __tablename__ = "project_tags"

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

    project = relationship("Project", back_populates="project_tags")
    tag = relationship("Tag", back_populates="project_tags")


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        SQLEnum(TaskStatus, name="task_status", values_callable=_enum_values),
        default=TaskStatus.PENDING, nullable=False, index=True,
    )
    due_date = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, index=True)
    completed_at = Column(UTCDateTime, nullable=True)  # stamped once, never cleared
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    project = relationship("Project", back_populates="tasks")


# ============================================================
# COLLABORATORS
# ============================================================

class ProjectCollaborator(Base):
    __tablename__ = "project_collaborators"

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(String, nullable=False, default="member")  # free-form: member, editor, owner, admin
    added_at = Column(UTCDateTime, default=utcnow)

    project = relationship("Project", back_populates="collaborators")
    user = relationship("User", back_populates="collaborations")


# ============================================================
# ACTIVITY LOGS (Append-only — never update or delete)
# ============================================================

class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)  # project, task, user
    entity_id = Column(Integer, nullable=False)  # no FK: survives deletion of the entity
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    timestamp = Column(UTCDateTime, default=utcnow, index=True)
    extra_data = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_activity_entity", "entity_type", "entity_id"),
        Index("idx_activity_user_timestamp", "user_id", "timestamp"),
    )


# ============================================================
# TOKEN REVOCATION
# ============================================================

class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    jti = Column(String, unique=True, nullable=False, index=True)  # JWT ID
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    revoked_at = Column(UTCDateTime, default=utcnow)
    expires_at = Column(UTCDateTime, nullable=False)  # When the token would have expired
