# routers/users.py — User administration and self-service plan changes
import logging
from typing import List

from fastapi import APIRouter, Depends

from access import authorize
from auth import get_current_user, CurrentUser
from errors import NotFound, storage_errors
from models import UserRole, SubscriptionPlan
from schemas import ApiModel, UserOut
from storage import DatabaseStorage, get_storage

logger = logging.getLogger("projecthub.users")

router = APIRouter(prefix="/api/users", tags=["Users"])


# --- Schemas ---

class PlanUpdate(ApiModel):
    plan: SubscriptionPlan


class RoleUpdate(ApiModel):
    role: UserRole


# --- Endpoints ---

@router.get("", response_model=List[UserOut])
async def list_users(
    admin: CurrentUser = Depends(authorize("users:list")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """All users, without credentials (admin only)"""
    with storage_errors("Failed to retrieve users"):
        return await storage.list_users()


@router.post("/upgrade-plan", response_model=UserOut)
async def upgrade_plan(
    data: PlanUpdate,
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Change the caller's own plan.

    No payment is taken here; a billing provider would confirm the charge
    before this call in a real deployment.
    """
    with storage_errors("Failed to update subscription plan"):
        updated = await storage.update_user_plan(user.id, data.plan, actor_id=user.id)
    if updated is None:
        raise NotFound("User not found")
    logger.info(f"User {user.id} moved to plan {data.plan.value}")
    return updated


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: int,
    admin: CurrentUser = Depends(authorize("users:read")),
    storage: DatabaseStorage = Depends(get_storage),
):
    with storage_errors("Failed to retrieve user"):
        user = await storage.get_user(user_id)
    if user is None:
        raise NotFound("User not found")
    return user


@router.patch("/{user_id}/plan", response_model=UserOut)
async def update_user_plan(
    user_id: int,
    data: PlanUpdate,
    admin: CurrentUser = Depends(authorize("users:update_plan")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Set a user's subscription plan (admin only)"""
    with storage_errors("Failed to update user plan"):
        user = await storage.update_user_plan(user_id, data.plan, actor_id=admin.id)
    if user is None:
        raise NotFound("User not found")
    logger.info(f"Admin {admin.id} set plan of user {user_id} to {data.plan.value}")
    return user


@router.patch("/{user_id}/role", response_model=UserOut)
async def update_user_role(
    user_id: int,
    data: RoleUpdate,
    admin: CurrentUser = Depends(authorize("users:update_role")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Set a user's role (admin only)"""
    with storage_errors("Failed to update user role"):
        user = await storage.update_user_role(user_id, data.role, actor_id=admin.id)
    if user is None:
        raise NotFound("User not found")
    logger.info(f"Admin {admin.id} set role of user {user_id} to {data.role.value}")
    return user
