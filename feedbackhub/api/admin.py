"""
Admin API endpoints for FeedbackHub operations.

Includes:
- Billing cycle and usage resets (called by the scheduler)
- Plan changes reported by the billing system
- Visibility maintenance
- Metrics and monitoring
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from feedbackhub.api.security import verify_api_token
from feedbackhub.database import get_db
from feedbackhub.schemas.feedback_schemas import PlanChangeRequest
from feedbackhub.services.billing_cycle_service import reset_due_billing_cycles
from feedbackhub.services.usage_service import (
    cancel_subscription,
    change_plan,
    get_usage_stats,
    get_usage_summary,
    reset_usage,
)
from feedbackhub.services.visibility_service import feedback_visibility_service
from feedbackhub.utils.logging_config import metrics


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(verify_api_token)],
)


# ============== BILLING & USAGE ==============


@router.post("/billing-cycle-reset")
def run_billing_cycle_reset(now: Optional[datetime] = None, db: Session = Depends(get_db)):
    """Reset usage for every tenant whose billing cycle is due."""
    result = reset_due_billing_cycles(db, now)
    return {"message": "Billing cycle reset completed", **result}


@router.post("/usage-reset/{user_id}")
def reset_user_usage(user_id: str, db: Session = Depends(get_db)):
    reset_usage(db, user_id)
    return {"message": "Usage reset", "usage": get_usage_stats(db, user_id)}


@router.post("/subscriptions/{user_id}/plan")
def change_user_plan(user_id: str, request: PlanChangeRequest, db: Session = Depends(get_db)):
    """Apply an upgrade or downgrade; visibility is recomputed if the plan changed."""
    change_plan(
        db,
        user_id,
        plan=request.plan.value,
        status=request.status.value if request.status else None,
        period_start=request.current_period_start,
        period_end=request.current_period_end,
    )
    return {"message": "Plan updated", "usage": get_usage_stats(db, user_id)}


@router.post("/subscriptions/{user_id}/cancel")
def cancel_user_subscription(user_id: str, db: Session = Depends(get_db)):
    cancel_subscription(db, user_id)
    return {"message": "Subscription canceled", "usage": get_usage_stats(db, user_id)}


@router.get("/usage/summary")
def usage_summary(db: Session = Depends(get_db)):
    """Plan distribution and tenants at or over their limits."""
    return get_usage_summary(db)


# ============== VISIBILITY ==============


@router.post("/visibility/recalculate")
def recalculate_visibility(db: Session = Depends(get_db)):
    """Re-rank feedback for every tenant."""
    result = feedback_visibility_service.recalculate_all_visibility(db)
    return {"message": "Visibility recalculated", **result}


# ============== METRICS ENDPOINTS ==============


@router.get("/metrics")
async def get_metrics():
    """Get current application metrics."""
    return metrics.get_stats()


@router.post("/metrics/reset")
async def reset_metrics():
    """Reset all metrics (use with caution)."""
    metrics.reset()
    return {"message": "Metrics reset"}
