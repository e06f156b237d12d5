"""
Feedback visibility ranking.

Feedback is never deleted when a tenant goes over their plan limit. Instead
the newest N items across all of the tenant's projects are visible, ranked
1..N (1 = newest), and everything older is hidden with no rank.
"""

import threading
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from feedbackhub.models.feedback import Feedback, Visible
from feedbackhub.models.project import Project
from feedbackhub.models.subscription import Subscription
from feedbackhub.services.errors import NotFoundError
from feedbackhub.services.subscription_service import (
    get_current_usage,
    get_feedback_limit,
    get_project_ids,
)
from feedbackhub.utils.logging_config import StructuredLogger, log_execution_time, metrics

logger = StructuredLogger(__name__)

# Tenants share a fixed pool of locks, picked by hash of the tenant id
LOCK_STRIPES = 64


def newest_first(query):
    """Creation time descending, later insertion first on ties."""
    return query.order_by(Feedback.created_at.desc(), Feedback.id.desc())


class FeedbackVisibilityService:
    """
    Keeps isVisible/visibilityRank consistent with the tenant's plan limit.

    Writes for one tenant are serialized by a striped lock, so two
    concurrent submissions cannot both claim rank 1. Unrelated tenants may
    share a stripe.
    """

    def __init__(self, stripes: int = LOCK_STRIPES):
        self._locks: List[threading.RLock] = [threading.RLock() for _ in range(stripes)]

    def _tenant_lock(self, user_id: str) -> threading.RLock:
        return self._locks[hash(user_id) % len(self._locks)]

    @log_execution_time("feedbackhub.visibility")
    def recompute_visibility(self, db: Session, user_id: str) -> None:
        """
        Rebuild the visible/hidden partition for every feedback row of a tenant.

        Idempotent. All writes are committed together; on error the session
        is rolled back and the exception propagates.
        """
        with self._tenant_lock(user_id):
            try:
                self._apply_partition(db, user_id)
                db.commit()
            except Exception:
                db.rollback()
                logger.error("Error updating feedback visibility", exc_info=True, user_id=user_id)
                raise

        metrics.increment("visibility.recompute")

    def _apply_partition(self, db: Session, user_id: str) -> None:
        feedback_limit = max(0, get_feedback_limit(db, user_id))

        project_ids = get_project_ids(db, user_id)
        if not project_ids:
            logger.info("No projects found, nothing to rank", user_id=user_id)
            return

        rows = newest_first(
            db.query(Feedback.id).filter(Feedback.project_id.in_(project_ids))
        ).all()
        ordered_ids = [row.id for row in rows]

        visible_count = min(feedback_limit, len(ordered_ids))
        visible_ids = ordered_ids[:visible_count]
        hidden_ids = ordered_ids[visible_count:]

        if visible_ids:
            db.query(Feedback).filter(Feedback.id.in_(visible_ids)).update(
                {Feedback.is_visible: True},
                synchronize_session=False,
            )
            db.bulk_update_mappings(
                Feedback,
                [
                    {"id": feedback_id, "visibility_rank": rank}
                    for rank, feedback_id in enumerate(visible_ids, start=1)
                ],
            )

        if hidden_ids:
            db.query(Feedback).filter(Feedback.id.in_(hidden_ids)).update(
                {Feedback.is_visible: False, Feedback.visibility_rank: None},
                synchronize_session=False,
            )

        logger.info(
            "Feedback visibility updated",
            user_id=user_id,
            total=len(ordered_ids),
            visible=len(visible_ids),
            hidden=len(hidden_ids),
            limit=feedback_limit,
        )

    def handle_feedback_creation(self, db: Session, user_id: str, feedback_id: int) -> None:
        """
        Place a just-inserted feedback row.

        Under the limit the new row takes rank 1 and every other visible row
        shifts down by one. Once the tenant is over the limit, or the visible
        set is already full, a full recompute runs instead.
        """
        with self._tenant_lock(user_id):
            try:
                usage = get_current_usage(db, user_id)
                over_limit = usage.feedback_used > usage.feedback_limit
                placed = not over_limit and self._place_as_newest(
                    db, user_id, feedback_id, usage.feedback_limit
                )
            except Exception:
                db.rollback()
                logger.error(
                    "Error handling feedback creation",
                    exc_info=True,
                    user_id=user_id,
                    feedback_id=feedback_id,
                )
                raise

            if over_limit:
                logger.info(
                    "Tenant over limit, recomputing visibility",
                    user_id=user_id,
                    used=usage.feedback_used,
                    limit=usage.feedback_limit,
                )
            if not placed:
                # recompute_visibility logs and rolls back its own failures
                self.recompute_visibility(db, user_id)

    def _place_as_newest(self, db: Session, user_id: str, feedback_id: int, feedback_limit: int) -> bool:
        """Fast path. Returns False when a full recompute is needed instead."""
        feedback = (
            db.query(Feedback)
            .join(Project, Feedback.project_id == Project.id)
            .filter(Feedback.id == feedback_id, Project.user_id == user_id)
            .first()
        )
        if feedback is None:
            raise NotFoundError("Feedback not found or access denied")

        project_ids = get_project_ids(db, user_id)
        others_visible = (
            db.query(Feedback)
            .filter(
                Feedback.project_id.in_(project_ids),
                Feedback.is_visible.is_(True),
                Feedback.id != feedback_id,
            )
            .count()
        )
        if others_visible + 1 > feedback_limit:
            return False

        feedback.visibility = Visible(rank=1)
        db.query(Feedback).filter(
            Feedback.project_id.in_(project_ids),
            Feedback.is_visible.is_(True),
            Feedback.id != feedback_id,
            Feedback.visibility_rank.isnot(None),
        ).update(
            {Feedback.visibility_rank: Feedback.visibility_rank + 1},
            synchronize_session=False,
        )
        db.commit()

        metrics.increment("visibility.fast_path")
        logger.debug("New feedback set as visible with rank 1", user_id=user_id, feedback_id=feedback_id)
        return True

    def get_visible_feedback(
        self,
        db: Session,
        user_id: str,
        project_id: int,
        skip: int = 0,
        take: int = 50,
        include_hidden: bool = False,
    ) -> List[Feedback]:
        """Feedback for one project in rank order (hidden rows last, newest first)."""
        project = (
            db.query(Project)
            .filter(Project.id == project_id, Project.user_id == user_id)
            .first()
        )
        if project is None:
            raise NotFoundError("Project not found or access denied")

        query = db.query(Feedback).filter(Feedback.project_id == project_id)
        if not include_hidden:
            query = query.filter(Feedback.is_visible.is_(True))

        return (
            query.order_by(
                Feedback.visibility_rank.is_(None),
                Feedback.visibility_rank.asc(),
                Feedback.created_at.desc(),
                Feedback.id.desc(),
            )
            .offset(skip)
            .limit(take)
            .all()
        )

    def get_visibility_stats(self, db: Session, user_id: str) -> Dict[str, Any]:
        project_ids = get_project_ids(db, user_id)
        if not project_ids:
            return {
                "total_feedback": 0,
                "visible_feedback": 0,
                "hidden_feedback": 0,
                "feedback_limit": 0,
                "is_over_limit": False,
            }

        query = db.query(Feedback).filter(Feedback.project_id.in_(project_ids))
        total = query.count()
        visible = query.filter(Feedback.is_visible.is_(True)).count()
        usage = get_current_usage(db, user_id)

        return {
            "total_feedback": total,
            "visible_feedback": visible,
            "hidden_feedback": total - visible,
            "feedback_limit": usage.feedback_limit,
            "is_over_limit": usage.is_over_limit,
        }

    def recalculate_all_visibility(self, db: Session) -> Dict[str, int]:
        """Maintenance pass over every tenant with a subscription."""
        user_ids = [row.user_id for row in db.query(Subscription.user_id).all()]
        processed = 0
        errors = 0

        for user_id in user_ids:
            try:
                self.recompute_visibility(db, user_id)
                processed += 1
            except Exception:
                # Already logged by recompute_visibility
                errors += 1

        logger.info("Visibility recalculation completed", processed=processed, errors=errors)
        return {"processed": processed, "errors": errors}


# Global service instance
feedback_visibility_service = FeedbackVisibilityService()
