"""
Usage and limit gate.

Thin coordination over the subscription record. Decides when the
visibility ranker's full recompute must run: usage crossing the limit,
plan changes and billing-cycle resets.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from feedbackhub.config import settings
from feedbackhub.models.feedback import Feedback
from feedbackhub.models.project import Project
from feedbackhub.models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from feedbackhub.services.errors import NotFoundError
from feedbackhub.services.plans import get_plan_config
from feedbackhub.services.subscription_service import (
    get_current_usage,
    get_or_create_subscription,
)
from feedbackhub.services.visibility_service import feedback_visibility_service

logger = logging.getLogger(__name__)


def can_create_project(db: Session, user_id: str) -> bool:
    usage = get_current_usage(db, user_id)
    return usage.projects_used < usage.projects_limit


def increment_feedback_usage(
    db: Session,
    user_id: str,
    update_visibility: bool = True,
) -> Subscription:
    """
    Count one more feedback item against the current period.

    When the increment takes usage past the limit the full visibility
    recompute runs, unless the caller handles visibility itself.
    """
    subscription = get_or_create_subscription(db, user_id)
    db.query(Subscription).filter(Subscription.id == subscription.id).update(
        {Subscription.feedback_used_this_period: Subscription.feedback_used_this_period + 1},
        synchronize_session=False,
    )
    db.commit()
    db.refresh(subscription)

    if update_visibility and subscription.feedback_used_this_period > subscription.feedback_limit:
        logger.info(
            f"User {user_id} over feedback limit "
            f"({subscription.feedback_used_this_period}/{subscription.feedback_limit})"
        )
        feedback_visibility_service.recompute_visibility(db, user_id)

    return subscription


def track_feedback_creation(db: Session, user_id: str, project_id: int) -> Subscription:
    """Increment usage for a feedback item created in one of the tenant's projects."""
    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.user_id == user_id)
        .first()
    )
    if project is None:
        raise NotFoundError("Project not found or access denied")

    # Visibility is placed by the ingestion pipeline right after this
    subscription = increment_feedback_usage(db, user_id, update_visibility=False)
    logger.info(f"Feedback usage tracked for user {user_id}, project {project_id}")
    return subscription


def track_project_creation(db: Session, user_id: str) -> int:
    subscription = get_or_create_subscription(db, user_id)
    subscription.project_count = db.query(Project).filter(Project.user_id == user_id).count()
    db.commit()
    return subscription.project_count


def reset_usage(db: Session, user_id: str) -> None:
    """Start a new billing period: usage back to zero, hidden feedback re-ranked."""
    subscription = get_or_create_subscription(db, user_id)
    subscription.feedback_used_this_period = 0
    db.commit()

    feedback_visibility_service.recompute_visibility(db, user_id)
    logger.info(f"Usage reset for user {user_id}")


def change_plan(
    db: Session,
    user_id: str,
    plan: str,
    status: Optional[str] = None,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
) -> Subscription:
    """
    Apply an upgrade or downgrade. Usage is kept; limits come from the plan.
    Visibility is recomputed only when the plan actually changed.
    """
    config = get_plan_config(plan)
    subscription = get_or_create_subscription(db, user_id)
    plan_changed = subscription.plan != config.plan.value

    subscription.plan = config.plan.value
    subscription.feedback_limit = config.feedback_per_period
    subscription.project_limit = config.projects
    if status is not None:
        subscription.status = SubscriptionStatus(status).value
    if period_start is not None:
        subscription.current_period_start = period_start
    if period_end is not None:
        subscription.current_period_end = period_end
    db.commit()

    if plan_changed:
        logger.info(f"User {user_id} moved to plan {config.plan.value}")
        feedback_visibility_service.recompute_visibility(db, user_id)

    return subscription


def cancel_subscription(db: Session, user_id: str) -> Subscription:
    """Downgrade to FREE and start a fresh free period."""
    free = get_plan_config(SubscriptionPlan.FREE)
    subscription = get_or_create_subscription(db, user_id)

    subscription.plan = SubscriptionPlan.FREE.value
    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.feedback_limit = free.feedback_per_period
    subscription.project_limit = free.projects
    subscription.feedback_used_this_period = 0
    subscription.current_period_start = None
    subscription.current_period_end = None
    db.commit()

    feedback_visibility_service.recompute_visibility(db, user_id)
    return subscription


def get_usage_stats(db: Session, user_id: str) -> Dict[str, Any]:
    usage = get_current_usage(db, user_id)
    return {
        "user_id": user_id,
        "plan": usage.plan,
        "feedback": {
            "used": usage.feedback_used,
            "limit": usage.feedback_limit,
            "percentage": usage.feedback_percentage,
            "is_over_limit": usage.is_over_limit,
        },
        "projects": {
            "used": usage.projects_used,
            "limit": usage.projects_limit,
            "is_at_limit": usage.projects_used >= usage.projects_limit,
        },
        "billing_period": {
            "start": usage.period_start,
            "end": usage.period_end,
            "days_remaining": usage.days_until_reset,
        },
    }


def get_users_over_limits(db: Session) -> List[str]:
    rows = (
        db.query(Subscription.user_id)
        .filter(Subscription.feedback_used_this_period > Subscription.feedback_limit)
        .all()
    )
    return [row.user_id for row in rows]


def get_users_approaching_limits(db: Session, threshold: Optional[float] = None) -> List[str]:
    """Tenants at or above `threshold` of their limit but not over it."""
    threshold = threshold if threshold is not None else settings.approaching_limit_threshold
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.feedback_used_this_period <= Subscription.feedback_limit)
        .all()
    )
    return [
        s.user_id
        for s in subscriptions
        if s.feedback_used_this_period >= math.floor(s.feedback_limit * threshold)
        and s.feedback_used_this_period < s.feedback_limit
    ]


def get_usage_summary(db: Session) -> Dict[str, Any]:
    plan_rows = (
        db.query(Subscription.plan, func.count(Subscription.id).label("count"))
        .group_by(Subscription.plan)
        .all()
    )

    return {
        "total_users": db.query(Subscription).count(),
        "total_feedback": db.query(Feedback).count(),
        "total_projects": db.query(Project).count(),
        "plan_distribution": {row.plan: row.count for row in plan_rows},
        "users_over_limit": len(get_users_over_limits(db)),
        "users_approaching_limit": len(get_users_approaching_limits(db)),
    }
