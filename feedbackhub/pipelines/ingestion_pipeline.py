from typing import Optional

from sqlalchemy.orm import Session

from feedbackhub.config import settings
from feedbackhub.models.feedback import Feedback
from feedbackhub.models.project import Project
from feedbackhub.services.classifier_service import FeedbackClassifier
from feedbackhub.services.errors import NotFoundError, ValidationError
from feedbackhub.services.feedback_service import create_feedback
from feedbackhub.services.usage_service import track_feedback_creation
from feedbackhub.services.visibility_service import feedback_visibility_service
from feedbackhub.utils.logging_config import StructuredLogger, metrics
from feedbackhub.utils.sanitization import sanitize_email, sanitize_feedback_content

logger = StructuredLogger(__name__)


def ingest_feedback(
    db: Session,
    classifier: FeedbackClassifier,
    project_id: int,
    content: str,
    email: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Feedback:
    """
    Widget submission pipeline.
    Sanitize, classify, store, count usage and place the row for ranking.

    Only a failed insert is fatal. Classification, usage tracking and
    visibility placement are logged and skipped on error so the submitter
    always gets their feedback stored.
    """

    # 1) Sanitize
    clean_content = sanitize_feedback_content(content)
    if not clean_content:
        raise ValidationError("Feedback content is empty")
    clean_email = sanitize_email(email or "")[: settings.email_max_length]

    # 2) Project must exist; its owner is the tenant
    project = db.query(Project).filter(Project.id == project_id).first()
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")
    user_id = project.user_id

    # 3) Classify (never raises on provider failure, but guard anyway)
    classification = None
    try:
        classification = classifier.classify(clean_content)
    except Exception as e:
        metrics.increment("ingestion.classification_failed")
        logger.error("Classification failed, storing unclassified", project_id=project_id, error=str(e))

    # 4) Persist
    feedback = create_feedback(
        db,
        project_id=project_id,
        content=clean_content,
        email=clean_email or None,
        classification=classification,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
    )

    # 5) Usage counter
    try:
        track_feedback_creation(db, user_id, project_id)
    except Exception as e:
        db.rollback()
        metrics.increment("ingestion.usage_failed")
        logger.error("Usage tracking failed", user_id=user_id, feedback_id=feedback.id, error=str(e))

    # 6) Visibility
    try:
        feedback_visibility_service.handle_feedback_creation(db, user_id, feedback.id)
    except Exception as e:
        metrics.increment("ingestion.visibility_failed")
        logger.error("Visibility update failed", user_id=user_id, feedback_id=feedback.id, error=str(e))

    db.refresh(feedback)
    logger.info(
        "Feedback ingested",
        user_id=user_id,
        project_id=project_id,
        feedback_id=feedback.id,
        category=feedback.category,
        visible=feedback.is_visible,
    )
    return feedback
