from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Optional, Any

from feedbackhub.config import settings
from feedbackhub.models.feedback import FeedbackCategory, FeedbackStatus, Sentiment
from feedbackhub.models.subscription import SubscriptionPlan, SubscriptionStatus


class WidgetFeedbackRequest(BaseModel):
    """Submission from the embeddable widget."""
    project_id: int
    content: str = Field(min_length=1, max_length=settings.feedback_max_length)
    email: Optional[str] = Field(default=None, max_length=settings.email_max_length)


class FeedbackSubmitResponse(BaseModel):
    id: int
    status: str
    submitted_at: datetime
    category: Optional[str] = None
    sentiment: Optional[str] = None


class FeedbackUpdateRequest(BaseModel):
    """Operator edit. Omitted fields are left unchanged."""
    status: Optional[FeedbackStatus] = None
    notes: Optional[str] = Field(default=None, max_length=settings.notes_max_length)
    manual_category: Optional[FeedbackCategory] = None
    manual_sentiment: Optional[Sentiment] = None
    category_overridden: Optional[bool] = None
    sentiment_overridden: Optional[bool] = None


class FeedbackOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    content: str
    email: Optional[str] = None
    notes: Optional[str] = None
    status: str
    category: Optional[str] = None
    sentiment: Optional[str] = None
    category_confidence: Optional[float] = None
    sentiment_confidence: Optional[float] = None
    analysis_method: Optional[str] = None
    ai_reasoning: Optional[str] = None
    manual_category: Optional[str] = None
    manual_sentiment: Optional[str] = None
    category_overridden: bool = False
    sentiment_overridden: bool = False
    effective_category: Optional[str] = None
    effective_sentiment: Optional[str] = None
    is_visible: bool
    visibility_rank: Optional[int] = None
    created_at: datetime


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    url: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=1000)


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    name: str
    url: str
    description: Optional[str] = None
    created_at: datetime


class VisibilityStats(BaseModel):
    total_feedback: int
    visible_feedback: int
    hidden_feedback: int
    feedback_limit: int
    is_over_limit: bool


class FeedbackStatsResponse(BaseModel):
    total: int
    visible: int
    by_status: Dict[str, int]
    by_category: Dict[str, int]
    by_sentiment: Dict[str, int]
    needs_attention: int  # Negative or bug reports


class PlanChangeRequest(BaseModel):
    """Plan change reported by the billing system."""
    plan: SubscriptionPlan
    status: Optional[SubscriptionStatus] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class UsageResponse(BaseModel):
    user_id: str
    plan: str
    feedback: Dict[str, Any]
    projects: Dict[str, Any]
    billing_period: Dict[str, Any]
