# schemas.py — Shared response models (camelCase on the wire)
from datetime import datetime
from typing import Optional, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models import UserRole, SubscriptionPlan, ProjectStatus, TaskStatus


class ApiModel(BaseModel):
    """Serializes as camelCase, accepts camelCase or snake_case input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Users ---

class UserOut(ApiModel):
    """A user without the credential column"""

    id: int
    username: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole
    plan: SubscriptionPlan
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None


# --- Projects & tags ---

class TagOut(ApiModel):
    id: int
    name: str


class ProjectOut(ApiModel):
    id: int
    name: str
    description: Optional[str] = None
    status: ProjectStatus
    progress: int
    created_at: Optional[datetime] = None
    user_id: int


class ProjectDetailOut(ProjectOut):
    tags: List[TagOut] = []


# --- Tasks ---

class TaskOut(ApiModel):
    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    project_id: int
    assigned_to_id: Optional[int] = None
    created_by_id: int


# --- Collaborators ---

class CollaborationOut(ApiModel):
    project_id: int
    user_id: int
    role: str
    added_at: Optional[datetime] = None


class CollaboratorOut(ApiModel):
    user_id: int
    role: str
    added_at: Optional[datetime] = None
    username: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


# --- Activity ---

class ActivityLogOut(ApiModel):
    id: int
    action: str
    entity_type: str
    entity_id: int
    user_id: int
    timestamp: Optional[datetime] = None
    # The ORM attribute is extra_data; "metadata" is reserved on declarative models
    extra_data: Optional[dict] = Field(
        default=None,
        validation_alias=AliasChoices("extra_data", "metadata"),
        serialization_alias="metadata",
    )
