"""Tests for feedback management and the ingestion pipeline."""

import pytest

from feedbackhub.models.feedback import Feedback
from feedbackhub.models.project import Project
from feedbackhub.pipelines.ingestion_pipeline import ingest_feedback
from feedbackhub.services.classifier_service import FeedbackClassifier
from feedbackhub.services.errors import LimitExceededError, NotFoundError, ValidationError
from feedbackhub.services.feedback_service import (
    create_project,
    delete_feedback,
    get_effective_category,
    get_effective_sentiment,
    get_feedback_stats,
    update_feedback,
)
from feedbackhub.services.subscription_service import get_current_usage
from feedbackhub.services.visibility_service import feedback_visibility_service
from feedbackhub.utils.logging_config import metrics


TENANT = "tenant-1"


class TestOverridePrecedence:
    """Manual category/sentiment win only while the override flag is set."""

    def test_override_wins_when_flagged(self):
        feedback = Feedback(category="BUG", manual_category="FEATURE", category_overridden=True)
        assert get_effective_category(feedback) == "FEATURE"

    def test_flag_off_reports_analyzed_value(self):
        """Turning the flag off without clearing the manual value reports the AI value."""
        feedback = Feedback(category="BUG", manual_category="FEATURE", category_overridden=True)
        feedback.category_overridden = False
        assert get_effective_category(feedback) == "BUG"

    def test_flag_without_manual_value(self):
        feedback = Feedback(sentiment="POSITIVE", manual_sentiment=None, sentiment_overridden=True)
        assert get_effective_sentiment(feedback) == "POSITIVE"

    def test_set_override_helpers(self):
        feedback = Feedback(category="REVIEW", sentiment="NEUTRAL")

        feedback.set_category_override("BUG")
        assert feedback.category_overridden is True
        assert feedback.effective_category == "BUG"

        feedback.set_category_override(None)
        assert feedback.manual_category is None
        assert feedback.category_overridden is False
        assert feedback.effective_category == "REVIEW"


class TestProjects:
    def test_create_project(self, db_session):
        project = create_project(db_session, TENANT, "  Docs site ", "https://docs.example.com")

        assert project.id is not None
        assert project.name == "Docs site"
        assert get_current_usage(db_session, TENANT).projects_used == 1

    def test_free_plan_project_limit(self, db_session):
        create_project(db_session, TENANT, "First", "https://one.example.com")
        with pytest.raises(LimitExceededError):
            create_project(db_session, TENANT, "Second", "https://two.example.com")

    def test_rejects_non_http_url(self, db_session):
        with pytest.raises(ValidationError):
            create_project(db_session, TENANT, "Site", "javascript:alert(1)")
        assert db_session.query(Project).count() == 0


class TestUpdateFeedback:
    @pytest.fixture
    def feedback(self, make_project, make_feedback, db_session):
        item = make_feedback(make_project())[0]
        item.category = "BUG"
        item.sentiment = "NEGATIVE"
        db_session.commit()
        return item

    def test_status_and_notes(self, db_session, feedback):
        updated = update_feedback(db_session, TENANT, feedback.id, {
            "status": "REVIEWED",
            "notes": "<b>Called</b> the customer",
        })
        assert updated.status == "REVIEWED"
        assert updated.notes == "Called the customer"

    def test_manual_category_sets_override(self, db_session, feedback):
        updated = update_feedback(db_session, TENANT, feedback.id, {"manual_category": "FEATURE"})

        assert updated.category_overridden is True
        assert updated.effective_category == "FEATURE"
        assert updated.category == "BUG"

    def test_clearing_flag_clears_manual_value(self, db_session, feedback):
        update_feedback(db_session, TENANT, feedback.id, {"manual_sentiment": "POSITIVE"})
        updated = update_feedback(db_session, TENANT, feedback.id, {"sentiment_overridden": False})

        assert updated.manual_sentiment is None
        assert updated.sentiment_overridden is False
        assert updated.effective_sentiment == "NEGATIVE"

    def test_flag_without_value_rejected(self, db_session, feedback):
        with pytest.raises(ValidationError):
            update_feedback(db_session, TENANT, feedback.id, {"category_overridden": True})

    def test_other_tenant_cannot_update(self, db_session, feedback):
        with pytest.raises(NotFoundError):
            update_feedback(db_session, "tenant-2", feedback.id, {"status": "DONE"})

    def test_updates_do_not_touch_visibility(self, db_session, feedback, set_limit):
        set_limit(TENANT, 10)
        feedback_visibility_service.recompute_visibility(db_session, TENANT)

        updated = update_feedback(db_session, TENANT, feedback.id, {"status": "DONE"})
        assert updated.visibility_rank == 1


class TestDeleteFeedback:
    def test_delete_reveals_hidden_item(self, db_session, make_project, make_feedback, set_limit):
        project = make_project()
        items = make_feedback(project, count=3)
        set_limit(TENANT, 2)
        feedback_visibility_service.recompute_visibility(db_session, TENANT)

        delete_feedback(db_session, TENANT, items[2].id)

        db_session.refresh(items[0])
        assert items[0].visibility_rank == 2
        assert db_session.query(Feedback).count() == 2

    def test_delete_checks_ownership(self, db_session, make_project, make_feedback):
        item = make_feedback(make_project(user_id="tenant-2"))[0]
        with pytest.raises(NotFoundError):
            delete_feedback(db_session, TENANT, item.id)


class TestFeedbackStats:
    def test_counts_use_effective_values(self, db_session, make_project, make_feedback):
        project = make_project()
        a, b, c = make_feedback(project, count=3)
        a.category, a.sentiment = "BUG", "NEUTRAL"
        b.category, b.sentiment = "REVIEW", "POSITIVE"
        b.set_category_override("FEATURE")
        c.status = "DONE"
        db_session.commit()

        stats = get_feedback_stats(db_session, TENANT)

        assert stats["total"] == 3
        assert stats["by_status"]["PENDING"] == 2
        assert stats["by_status"]["DONE"] == 1
        assert stats["by_category"]["BUG"] == 1
        assert stats["by_category"]["FEATURE"] == 1
        assert stats["by_category"]["REVIEW"] == 0
        assert stats["by_category"]["uncategorized"] == 1
        assert stats["by_sentiment"]["POSITIVE"] == 1
        assert stats["needs_attention"] == 1

    def test_scoped_to_project(self, db_session, make_project, make_feedback, set_limit):
        set_limit(TENANT, 100)
        first = make_project(name="A")
        second = make_project(name="B")
        make_feedback(first, count=2)
        make_feedback(second, count=5)

        assert get_feedback_stats(db_session, TENANT, first.id)["total"] == 2
        assert get_feedback_stats(db_session, TENANT)["total"] == 7


class TestIngestion:
    """Widget submissions: only the insert itself may fail the request."""

    def test_ingest_classifies_and_ranks(self, db_session, make_project, fake_provider):
        project = make_project()

        feedback = ingest_feedback(
            db_session,
            FeedbackClassifier(provider=fake_provider),
            project.id,
            "<p>I love the new dashboard</p>",
            email="Fan@Example.com",
        )

        assert feedback.content == "I love the new dashboard"
        assert feedback.email == "fan@example.com"
        assert feedback.analysis_method == "AI"
        assert feedback.sentiment == "POSITIVE"
        assert feedback.visibility_rank == 1
        assert get_current_usage(db_session, TENANT).feedback_used == 1

    def test_newest_submission_takes_rank_one(self, db_session, make_project):
        project = make_project()
        classifier = FeedbackClassifier(provider=None)

        first = ingest_feedback(db_session, classifier, project.id, "First")
        second = ingest_feedback(db_session, classifier, project.id, "Second")

        db_session.refresh(first)
        assert second.visibility_rank == 1
        assert first.visibility_rank == 2

    def test_provider_failure_still_stores(self, db_session, make_project, failing_provider):
        project = make_project()
        feedback = ingest_feedback(
            db_session, FeedbackClassifier(provider=failing_provider), project.id, "Search is broken"
        )
        assert feedback.id is not None
        assert feedback.analysis_method == "FALLBACK"
        assert feedback.category == "BUG"

    def test_classifier_crash_stores_unclassified(self, db_session, make_project):
        class Exploding:
            def classify(self, content):
                raise RuntimeError("boom")

        project = make_project()
        feedback = ingest_feedback(db_session, Exploding(), project.id, "Hello")

        assert feedback.id is not None
        assert feedback.category is None
        assert metrics.get_stats()["counters"]["ingestion.classification_failed"] == 1

    def test_visibility_failure_still_stores(self, db_session, make_project, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("ranker down")

        monkeypatch.setattr(feedback_visibility_service, "handle_feedback_creation", broken)
        project = make_project()

        feedback = ingest_feedback(db_session, FeedbackClassifier(), project.id, "Still saved")

        assert db_session.query(Feedback).filter(Feedback.id == feedback.id).count() == 1
        assert feedback.is_visible is False
        assert metrics.get_stats()["counters"]["ingestion.visibility_failed"] == 1

    def test_empty_after_sanitization_rejected(self, db_session, make_project):
        project = make_project()
        with pytest.raises(ValidationError):
            ingest_feedback(db_session, FeedbackClassifier(), project.id, "<script>x</script>")
        assert db_session.query(Feedback).count() == 0

    def test_unknown_project(self, db_session):
        with pytest.raises(NotFoundError):
            ingest_feedback(db_session, FeedbackClassifier(), 999, "Hello")

    def test_over_limit_submission_is_kept_hidden_behind_newer(self, db_session, make_project, set_limit):
        project = make_project()
        set_limit(TENANT, 2)
        classifier = FeedbackClassifier()

        items = [ingest_feedback(db_session, classifier, project.id, f"Item {i}") for i in range(3)]

        for item in items:
            db_session.refresh(item)
        assert [i.visibility_rank for i in items] == [None, 2, 1]
        assert db_session.query(Feedback).count() == 3
