"""
Billing-cycle resets, run daily by an external scheduler.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from feedbackhub.models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from feedbackhub.services.errors import NotFoundError
from feedbackhub.services.usage_service import reset_usage

logger = logging.getLogger(__name__)


def get_free_users_needing_reset(db: Session, now: datetime) -> List[str]:
    """Free plans reset on the 1st of every month."""
    if now.day != 1:
        return []
    rows = (
        db.query(Subscription.user_id)
        .filter(Subscription.plan == SubscriptionPlan.FREE.value)
        .all()
    )
    return [row.user_id for row in rows]


def get_paid_users_needing_reset(db: Session, now: datetime) -> List[str]:
    """Active paid plans whose billing period has ended."""
    rows = (
        db.query(Subscription.user_id)
        .filter(
            Subscription.plan != SubscriptionPlan.FREE.value,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.current_period_end.isnot(None),
            Subscription.current_period_end <= now,
        )
        .all()
    )
    return [row.user_id for row in rows]


def reset_due_billing_cycles(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Reset usage for every tenant whose cycle is due.
    A failure for one tenant is logged and does not stop the others.
    """
    now = now or datetime.utcnow()
    user_ids = get_free_users_needing_reset(db, now) + get_paid_users_needing_reset(db, now)
    logger.info(f"Found {len(user_ids)} users needing billing cycle reset")

    reset_count = 0
    error_count = 0
    for user_id in user_ids:
        try:
            reset_usage(db, user_id)
            reset_count += 1
        except Exception as e:
            logger.error(f"Failed to reset billing cycle for user {user_id}: {e}")
            error_count += 1

    logger.info(f"Billing cycle reset completed: {reset_count} successful, {error_count} errors")
    return {"reset": reset_count, "errors": error_count}


def handle_billing_period_transition(
    db: Session,
    user_id: str,
    period_start: datetime,
    period_end: datetime,
) -> None:
    """New period reported by the payment provider: store it and reset usage."""
    subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if subscription is None:
        raise NotFoundError(f"No subscription for user {user_id}")

    subscription.current_period_start = period_start
    subscription.current_period_end = period_end
    db.commit()

    reset_usage(db, user_id)
