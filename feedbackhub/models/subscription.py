"""
Per-tenant subscription and usage counters.
"""

from datetime import datetime
import enum

from sqlalchemy import Column, DateTime, Integer, String

from feedbackhub.database import Base


class SubscriptionPlan(str, enum.Enum):
    FREE = "FREE"
    STARTER = "STARTER"
    PRO = "PRO"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), unique=True, nullable=False, index=True)

    plan = Column(String(20), nullable=False, default=SubscriptionPlan.FREE.value)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)

    # Limits copied from the plan catalogue when the plan changes
    feedback_limit = Column(Integer, nullable=False)
    project_limit = Column(Integer, nullable=False)

    # Rolling usage, reset every billing cycle
    feedback_used_this_period = Column(Integer, nullable=False, default=0)
    project_count = Column(Integer, nullable=False, default=0)

    # No billing period on the free plan
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
