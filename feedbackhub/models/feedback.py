"""
Feedback model: one comment submitted through a project's widget.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from feedbackhub.database import Base
from feedbackhub.models.project import Project  # noqa: F401


class FeedbackCategory(str, enum.Enum):
    BUG = "BUG"
    FEATURE = "FEATURE"
    REVIEW = "REVIEW"


class Sentiment(str, enum.Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class FeedbackStatus(str, enum.Enum):
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"
    DONE = "DONE"


class AnalysisMethod(str, enum.Enum):
    AI = "AI"
    FALLBACK = "FALLBACK"


@dataclass(frozen=True)
class Visible:
    """Feedback is shown on the dashboard at this rank (1 = newest)."""
    rank: int


@dataclass(frozen=True)
class Hidden:
    """Feedback is stored but over the plan limit."""


VisibilityState = Union[Visible, Hidden]


class Feedback(Base):
    """A submitted feedback item with its classification and visibility."""
    __tablename__ = "feedback"

    # Autoincrement id doubles as the insertion-order tie-break for ranking
    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    # Content
    content = Column(Text, nullable=False)
    email = Column(String(254), nullable=True)
    notes = Column(Text, nullable=True)  # Private operator notes
    status = Column(String(20), nullable=False, default=FeedbackStatus.PENDING.value)

    # Submitter context
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    # Classification (AI or keyword fallback)
    category = Column(String(20), nullable=True)
    sentiment = Column(String(20), nullable=True)
    category_confidence = Column(Float, nullable=True)
    sentiment_confidence = Column(Float, nullable=True)
    analysis_method = Column(String(20), nullable=True)
    ai_reasoning = Column(Text, nullable=True)
    is_ai_analyzed = Column(Boolean, nullable=False, default=False)
    ai_analyzed_at = Column(DateTime, nullable=True)
    analysis_processing_ms = Column(Float, nullable=True)

    # Manual overrides
    manual_category = Column(String(20), nullable=True)
    manual_sentiment = Column(String(20), nullable=True)
    category_overridden = Column(Boolean, nullable=False, default=False)
    sentiment_overridden = Column(Boolean, nullable=False, default=False)

    # Visibility: rank is set iff is_visible
    is_visible = Column(Boolean, nullable=False, default=False)
    visibility_rank = Column(Integer, nullable=True)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow)  # Set on operator edits only

    project = relationship("Project", back_populates="feedback")

    __table_args__ = (
        Index("ix_feedback_project_created", "project_id", "created_at"),
        Index("ix_feedback_project_visible", "project_id", "is_visible", "visibility_rank"),
    )

    @property
    def effective_category(self) -> Optional[str]:
        if self.category_overridden and self.manual_category:
            return self.manual_category
        return self.category

    @property
    def effective_sentiment(self) -> Optional[str]:
        if self.sentiment_overridden and self.manual_sentiment:
            return self.manual_sentiment
        return self.sentiment

    @property
    def visibility(self) -> VisibilityState:
        if self.is_visible and self.visibility_rank is not None:
            return Visible(rank=self.visibility_rank)
        return Hidden()

    @visibility.setter
    def visibility(self, state: VisibilityState) -> None:
        if isinstance(state, Visible):
            self.is_visible = True
            self.visibility_rank = state.rank
        else:
            self.is_visible = False
            self.visibility_rank = None

    def set_category_override(self, category: Optional[str]) -> None:
        """Override the category, or pass None to go back to the analyzed value."""
        self.manual_category = category
        self.category_overridden = category is not None

    def set_sentiment_override(self, sentiment: Optional[str]) -> None:
        """Override the sentiment, or pass None to go back to the analyzed value."""
        self.manual_sentiment = sentiment
        self.sentiment_overridden = sentiment is not None
