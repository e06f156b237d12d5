"""
Subscription lookups: plan, limits and current usage for a tenant.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from feedbackhub.models.project import Project
from feedbackhub.models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from feedbackhub.services.plans import get_plan_config

logger = logging.getLogger(__name__)


@dataclass
class UsageStats:
    """Snapshot of a tenant's plan, limits and usage."""
    plan: str
    status: str
    feedback_used: int
    feedback_limit: int
    feedback_percentage: int
    projects_used: int
    projects_limit: int
    is_over_limit: bool
    days_until_reset: int
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


def get_or_create_subscription(db: Session, user_id: str) -> Subscription:
    """Return the tenant's subscription, creating a FREE one on first use."""
    subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if subscription:
        return subscription

    free = get_plan_config(SubscriptionPlan.FREE)
    subscription = Subscription(
        user_id=user_id,
        plan=SubscriptionPlan.FREE.value,
        status=SubscriptionStatus.ACTIVE.value,
        feedback_limit=free.feedback_per_period,
        project_limit=free.projects,
        feedback_used_this_period=0,
        project_count=0,
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)

    logger.info(f"Initialized FREE subscription for user {user_id}")
    return subscription


def get_feedback_limit(db: Session, user_id: str) -> int:
    return get_or_create_subscription(db, user_id).feedback_limit


def get_project_ids(db: Session, user_id: str) -> List[int]:
    rows = db.query(Project.id).filter(Project.user_id == user_id).all()
    return [row.id for row in rows]


def days_until_reset(subscription: Subscription, now: Optional[datetime] = None) -> int:
    """Free plans reset on the 1st of each month, paid plans at period end."""
    now = now or datetime.utcnow()
    if subscription.plan == SubscriptionPlan.FREE.value:
        if now.month == 12:
            next_reset = datetime(now.year + 1, 1, 1)
        else:
            next_reset = datetime(now.year, now.month + 1, 1)
    elif subscription.current_period_end:
        next_reset = subscription.current_period_end
    else:
        return 0

    days = math.ceil((next_reset - now).total_seconds() / 86400)
    return max(0, days)


def get_current_usage(db: Session, user_id: str) -> UsageStats:
    subscription = get_or_create_subscription(db, user_id)

    project_count = db.query(Project).filter(Project.user_id == user_id).count()
    if project_count != subscription.project_count:
        subscription.project_count = project_count
        db.commit()

    used = subscription.feedback_used_this_period
    limit = subscription.feedback_limit
    percentage = round(used / limit * 100) if limit > 0 else 0

    return UsageStats(
        plan=subscription.plan,
        status=subscription.status,
        feedback_used=used,
        feedback_limit=limit,
        feedback_percentage=percentage,
        projects_used=project_count,
        projects_limit=subscription.project_limit,
        is_over_limit=used > limit,
        days_until_reset=days_until_reset(subscription),
        period_start=subscription.current_period_start,
        period_end=subscription.current_period_end,
    )
