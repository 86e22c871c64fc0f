# routers/analytics.py — Per-user dashboard stats and the admin overview
from typing import List

from fastapi import APIRouter, Depends

from access import authorize
from auth import get_current_user, CurrentUser
from errors import storage_errors
from plans import monthly_revenue
from schemas import ApiModel, ActivityLogOut, UserOut
from storage import DatabaseStorage, get_storage

router = APIRouter(prefix="/api", tags=["Analytics"])

RECENT_ACTIVITY_LIMIT = 5


# ============================================================
# SCHEMAS
# ============================================================

class UserStatsOut(ApiModel):
    total_projects: int
    active_tasks_count: int
    completion_rate: int


class UserAnalyticsOut(UserStatsOut):
    recent_activities: List[ActivityLogOut] = []


class UserCounts(ApiModel):
    total: int
    free: int
    pro: int
    enterprise: int


class ProjectCounts(ApiModel):
    total: int
    planning: int
    in_progress: int
    review: int
    completed: int


class TaskCounts(ApiModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    blocked: int


class AdminOverviewOut(ApiModel):
    users: UserCounts
    projects: ProjectCounts
    tasks: TaskCounts
    recent_signups: List[UserOut]
    monthly_revenue: int


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("/user-stats", response_model=UserStatsOut)
async def user_stats(
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Counts over the caller's own projects"""
    with storage_errors("Failed to retrieve user stats"):
        return await storage.get_user_stats(user.id)


@router.get("/analytics", response_model=UserAnalyticsOut)
async def user_analytics(
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    """The caller's stats plus their most recent activity"""
    with storage_errors("Failed to retrieve analytics"):
        stats = await storage.get_user_stats(user.id)
        activities = await storage.get_recent_activities(user.id, limit=RECENT_ACTIVITY_LIMIT)
    return UserAnalyticsOut(
        **stats,
        recent_activities=[ActivityLogOut.model_validate(a) for a in activities],
    )


@router.get("/admin/analytics", response_model=AdminOverviewOut)
async def admin_analytics(
    admin: CurrentUser = Depends(authorize("analytics:admin")),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Platform-wide counts and list-price monthly revenue (admin only)"""
    with storage_errors("Failed to retrieve admin analytics"):
        overview = await storage.get_admin_overview()
    users = overview["users"]
    return AdminOverviewOut(
        users=users,
        projects=overview["projects"],
        tasks=overview["tasks"],
        recent_signups=[UserOut.model_validate(u) for u in overview["recent_signups"]],
        monthly_revenue=monthly_revenue(users["pro"], users["enterprise"]),
    )
