# plans.py — Subscription tiers, quotas and list prices
from models import SubscriptionPlan

# Total order of tiers: free < pro < enterprise
PLAN_ORDER = {
    SubscriptionPlan.FREE: 0,
    SubscriptionPlan.PRO: 1,
    SubscriptionPlan.ENTERPRISE: 2,
}

# Maximum number of owned projects per tier
PLAN_PROJECT_LIMITS = {
    SubscriptionPlan.FREE: 3,
    SubscriptionPlan.PRO: 10,
    SubscriptionPlan.ENTERPRISE: 999,  # effectively unbounded
}

# Monthly list price in USD
PLAN_MONTHLY_PRICE = {
    SubscriptionPlan.FREE: 0,
    SubscriptionPlan.PRO: 29,
    SubscriptionPlan.ENTERPRISE: 99,
}


def meets_plan(min_plan, user_plan) -> bool:
    """True when user_plan is at or above min_plan."""
    return PLAN_ORDER[SubscriptionPlan(user_plan)] >= PLAN_ORDER[SubscriptionPlan(min_plan)]


def project_limit(plan) -> int:
    return PLAN_PROJECT_LIMITS[SubscriptionPlan(plan)]


def monthly_revenue(pro_count: int, enterprise_count: int) -> int:
    return (
        pro_count * PLAN_MONTHLY_PRICE[SubscriptionPlan.PRO]
        + enterprise_count * PLAN_MONTHLY_PRICE[SubscriptionPlan.ENTERPRISE]
    )
