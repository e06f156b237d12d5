from pydantic import BaseModel, Field
from typing import Literal, Optional

from feedbackhub.models.feedback import AnalysisMethod, FeedbackCategory, Sentiment


class AIClassification(BaseModel):
    """Structured output expected from the AI provider."""
    sentiment: Literal["POSITIVE", "NEGATIVE", "NEUTRAL"]
    category: Literal["BUG", "FEATURE", "REVIEW"]
    sentiment_confidence: float = Field(alias="sentimentConfidence")
    category_confidence: float = Field(alias="categoryConfidence")
    reasoning: str = ""

    model_config = {"populate_by_name": True}


class ClassificationResult(BaseModel):
    """Category and sentiment for one feedback item."""
    category: FeedbackCategory
    sentiment: Sentiment
    category_confidence: float  # 0.0-1.0
    sentiment_confidence: float  # 0.0-1.0
    reasoning: str
    analysis_method: AnalysisMethod
    processing_time_ms: Optional[float] = None
