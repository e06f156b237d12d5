"""
Subscription plan catalogue.
Limits are copied onto the tenant's subscription row when the plan changes.
"""

from typing import Dict, List

from pydantic import BaseModel

from feedbackhub.models.subscription import SubscriptionPlan


class PlanPrice(BaseModel):
    """USD per month."""
    monthly: int = 0
    annual: int = 0


class PlanConfig(BaseModel):
    plan: SubscriptionPlan
    name: str
    projects: int
    feedback_per_period: int
    price: PlanPrice = PlanPrice()


PLAN_CONFIGS: Dict[SubscriptionPlan, PlanConfig] = {
    SubscriptionPlan.FREE: PlanConfig(
        plan=SubscriptionPlan.FREE,
        name="Free",
        projects=1,
        feedback_per_period=100,
    ),
    SubscriptionPlan.STARTER: PlanConfig(
        plan=SubscriptionPlan.STARTER,
        name="Starter",
        projects=3,
        feedback_per_period=500,
        price=PlanPrice(monthly=19, annual=17),
    ),
    SubscriptionPlan.PRO: PlanConfig(
        plan=SubscriptionPlan.PRO,
        name="Pro",
        projects=10,
        feedback_per_period=2000,
        price=PlanPrice(monthly=39, annual=35),
    ),
}

_PLAN_ORDER = [SubscriptionPlan.FREE, SubscriptionPlan.STARTER, SubscriptionPlan.PRO]


def get_plan_config(plan: str) -> PlanConfig:
    return PLAN_CONFIGS[SubscriptionPlan(plan)]


def is_paid_plan(plan: str) -> bool:
    return SubscriptionPlan(plan) != SubscriptionPlan.FREE


def get_upgrade_options(plan: str) -> List[SubscriptionPlan]:
    """Plans strictly above the given one."""
    index = _PLAN_ORDER.index(SubscriptionPlan(plan))
    return _PLAN_ORDER[index + 1:]


def get_annual_savings(plan: str) -> int:
    price = get_plan_config(plan).price
    return (price.monthly - price.annual) * 12
