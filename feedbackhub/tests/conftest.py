import os

# Settings are read at import time; keep tests off the real database and provider
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = ""
os.environ["API_TOKEN"] = ""
os.environ["ENVIRONMENT"] = "dev"

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedbackhub.database import Base, get_db
from feedbackhub.models.feedback import Feedback
from feedbackhub.models.project import Project
from feedbackhub.models.subscription import Subscription  # noqa: F401
from feedbackhub.api.security import rate_limiter
from feedbackhub.api.server import app, get_classifier
from feedbackhub.services.classifier_service import FeedbackClassifier
from feedbackhub.services.subscription_service import get_or_create_subscription
from feedbackhub.utils.logging_config import metrics


class FakeProvider:
    """Stands in for the AI client. Records every call."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def classify_feedback(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_provider():
    return FakeProvider(
        response={
            "sentiment": "POSITIVE",
            "category": "REVIEW",
            "sentimentConfidence": 0.92,
            "categoryConfidence": 0.81,
            "reasoning": "Praise for the product",
        }
    )


@pytest.fixture
def failing_provider():
    return FakeProvider(error=RuntimeError("provider down"))


@pytest.fixture(autouse=True)
def reset_process_state():
    """Rate limiter and metrics are process-wide."""
    rate_limiter.reset()
    metrics.reset()
    yield
    rate_limiter.reset()
    metrics.reset()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a test database session."""
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def client(engine):
    """FastAPI test client on the in-memory database, with keyword-only classification."""
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_classifier] = lambda: FeedbackClassifier(provider=None)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_project(db_session):
    """Factory for projects owned by a tenant."""
    def _make(user_id="tenant-1", name="Marketing site"):
        project = Project(user_id=user_id, name=name, url="https://example.com")
        db_session.add(project)
        db_session.commit()
        db_session.refresh(project)
        return project
    return _make


@pytest.fixture
def make_feedback(db_session):
    """Factory for feedback rows, one minute apart, oldest first."""
    def _make(project, count=1, start=None, content="Nice widget"):
        start = start or datetime(2024, 1, 1, 12, 0, 0)
        items = []
        for i in range(count):
            feedback = Feedback(
                project_id=project.id,
                content=f"{content} #{i}",
                created_at=start + timedelta(minutes=i),
            )
            db_session.add(feedback)
            items.append(feedback)
        db_session.commit()
        return items
    return _make


@pytest.fixture
def set_limit(db_session):
    """Set a tenant's feedback limit (and optionally usage) directly."""
    def _set(user_id, limit, used=None):
        subscription = get_or_create_subscription(db_session, user_id)
        subscription.feedback_limit = limit
        if used is not None:
            subscription.feedback_used_this_period = used
        db_session.commit()
        return subscription
    return _set


def visibility_snapshot(db_session, project_ids):
    """(id, is_visible, rank, updated_at) for every row, by id."""
    db_session.expire_all()
    rows = (
        db_session.query(Feedback)
        .filter(Feedback.project_id.in_(project_ids))
        .order_by(Feedback.id)
        .all()
    )
    return [(r.id, r.is_visible, r.visibility_rank, r.updated_at) for r in rows]


@pytest.fixture
def snapshot(db_session):
    return lambda project_ids: visibility_snapshot(db_session, project_ids)
