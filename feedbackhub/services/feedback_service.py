"""
Feedback and project management for the dashboard.
"""

from datetime import datetime
from typing import Dict, Any, List, Optional

from sqlalchemy.orm import Session

from feedbackhub.models.feedback import (
    Feedback,
    FeedbackCategory,
    FeedbackStatus,
    Sentiment,
)
from feedbackhub.models.project import Project
from feedbackhub.schemas.analysis_schemas import ClassificationResult
from feedbackhub.services.errors import LimitExceededError, NotFoundError, ValidationError
from feedbackhub.services.usage_service import can_create_project, track_project_creation
from feedbackhub.services.visibility_service import feedback_visibility_service
from feedbackhub.utils.logging_config import StructuredLogger
from feedbackhub.utils.sanitization import sanitize_notes, sanitize_text, sanitize_url

logger = StructuredLogger(__name__)

# (manual value key, override flag key, enum, model setter)
_OVERRIDES = (
    ("manual_category", "category_overridden", FeedbackCategory, "set_category_override"),
    ("manual_sentiment", "sentiment_overridden", Sentiment, "set_sentiment_override"),
)


def get_effective_category(feedback: Feedback) -> Optional[str]:
    """Manual category when overridden, else the analyzed one."""
    return feedback.effective_category


def get_effective_sentiment(feedback: Feedback) -> Optional[str]:
    """Manual sentiment when overridden, else the analyzed one."""
    return feedback.effective_sentiment


def create_project(
    db: Session,
    user_id: str,
    name: str,
    url: str,
    description: Optional[str] = None,
) -> Project:
    """Create a project if the tenant's plan allows another one."""
    if not can_create_project(db, user_id):
        raise LimitExceededError("Project limit reached for current plan")

    clean_name = sanitize_text(name)
    clean_url = sanitize_url(url)
    if not clean_name:
        raise ValidationError("Project name is required")
    if not clean_url:
        raise ValidationError("URL must use HTTP or HTTPS protocol")

    project = Project(
        user_id=user_id,
        name=clean_name,
        url=clean_url,
        description=sanitize_text(description) if description else None,
    )
    db.add(project)
    db.commit()
    db.refresh(project)

    track_project_creation(db, user_id)
    return project


def get_owned_project(db: Session, user_id: str, project_id: int) -> Project:
    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.user_id == user_id)
        .first()
    )
    if project is None:
        raise NotFoundError("Project not found or access denied")
    return project


def create_feedback(
    db: Session,
    project_id: int,
    content: str,
    email: Optional[str] = None,
    classification: Optional[ClassificationResult] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Feedback:
    """
    Store a feedback row with its classification, if any.
    Visibility is left unset for the ranker to place.
    """
    feedback = Feedback(
        project_id=project_id,
        content=content,
        email=email or None,
        status=FeedbackStatus.PENDING.value,
        ip_address=ip_address,
        user_agent=user_agent,
        is_visible=False,
        visibility_rank=None,
    )

    if classification is not None:
        feedback.category = classification.category.value
        feedback.sentiment = classification.sentiment.value
        feedback.category_confidence = classification.category_confidence
        feedback.sentiment_confidence = classification.sentiment_confidence
        feedback.ai_reasoning = classification.reasoning
        feedback.analysis_method = classification.analysis_method.value
        feedback.analysis_processing_ms = classification.processing_time_ms
        feedback.is_ai_analyzed = True
        feedback.ai_analyzed_at = datetime.utcnow()

    db.add(feedback)
    db.commit()
    db.refresh(feedback)

    return feedback


def get_owned_feedback(db: Session, user_id: str, feedback_id: int) -> Feedback:
    feedback = (
        db.query(Feedback)
        .join(Project, Feedback.project_id == Project.id)
        .filter(Feedback.id == feedback_id, Project.user_id == user_id)
        .first()
    )
    if feedback is None:
        raise NotFoundError("Feedback not found or access denied")
    return feedback


def update_feedback(
    db: Session,
    user_id: str,
    feedback_id: int,
    changes: Dict[str, Any],
) -> Feedback:
    """
    Apply operator edits. Only keys present in `changes` are touched.

    Supported keys: status, notes, manual_category, manual_sentiment,
    category_overridden, sentiment_overridden. Turning an override flag
    off also clears the stored manual value.
    """
    feedback = get_owned_feedback(db, user_id, feedback_id)

    if "status" in changes and changes["status"] is not None:
        feedback.status = FeedbackStatus(changes["status"]).value

    if "notes" in changes:
        notes = sanitize_notes(changes["notes"] or "")
        feedback.notes = notes or None

    for value_key, flag_key, enum_type, setter_name in _OVERRIDES:
        flag = changes.get(flag_key)
        value = changes.get(value_key)
        setter = getattr(feedback, setter_name)

        if flag is False:
            setter(None)
        elif value is not None:
            setter(enum_type(value).value)
        elif flag is True and getattr(feedback, value_key) is None:
            raise ValidationError(f"{value_key} is required when {flag_key} is true")

    feedback.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(feedback)
    return feedback


def delete_feedback(db: Session, user_id: str, feedback_id: int) -> None:
    """Hard delete, then re-rank so a hidden item can take the freed slot."""
    feedback = get_owned_feedback(db, user_id, feedback_id)
    db.delete(feedback)
    db.commit()

    try:
        feedback_visibility_service.recompute_visibility(db, user_id)
    except Exception as e:
        logger.error("Visibility update after delete failed", user_id=user_id, error=str(e))


def list_tenant_feedback(db: Session, user_id: str, project_id: Optional[int] = None) -> List[Feedback]:
    query = (
        db.query(Feedback)
        .join(Project, Feedback.project_id == Project.id)
        .filter(Project.user_id == user_id)
    )
    if project_id is not None:
        query = query.filter(Feedback.project_id == project_id)
    return query.all()


def get_feedback_stats(
    db: Session,
    user_id: str,
    project_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Dashboard counters by status and by effective category/sentiment.
    `needs_attention` counts negative or bug feedback.
    """
    items = list_tenant_feedback(db, user_id, project_id)

    by_status = {s.value: 0 for s in FeedbackStatus}
    by_category = {c.value: 0 for c in FeedbackCategory}
    by_sentiment = {s.value: 0 for s in Sentiment}
    by_category["uncategorized"] = 0
    by_sentiment["uncategorized"] = 0
    needs_attention = 0

    for item in items:
        by_status[item.status] = by_status.get(item.status, 0) + 1

        category = item.effective_category or "uncategorized"
        sentiment = item.effective_sentiment or "uncategorized"
        by_category[category] += 1
        by_sentiment[sentiment] += 1

        if sentiment == Sentiment.NEGATIVE.value or category == FeedbackCategory.BUG.value:
            needs_attention += 1

    return {
        "total": len(items),
        "visible": sum(1 for item in items if item.is_visible),
        "by_status": by_status,
        "by_category": by_category,
        "by_sentiment": by_sentiment,
        "needs_attention": needs_attention,
    }
