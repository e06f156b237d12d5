"""
Feedback classification: AI first, keyword fallback on any failure.

Ingestion must never block on the AI provider, so `classify` always
returns a result. Invalid input (empty or oversized) skips the provider
and goes straight to the fallback.
"""

import logging
import time
from typing import Any, Dict, Optional, Protocol

from feedbackhub.config import settings
from feedbackhub.models.feedback import AnalysisMethod, FeedbackCategory, Sentiment
from feedbackhub.schemas.analysis_schemas import AIClassification, ClassificationResult
from feedbackhub.services.errors import ClassificationError
from feedbackhub.services.llm_client import LLMClient
from feedbackhub.services.text_service import TextAnalysisService
from feedbackhub.utils.logging_config import track_classification

logger = logging.getLogger(__name__)


class ClassificationProvider(Protocol):
    def classify_feedback(self, text: str) -> Dict[str, Any]:
        ...


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class FeedbackClassifier:
    """
    Classifies feedback text into category and sentiment.

    Args:
        provider: AI backend; None means keyword fallback only
        max_content_length: Longest text sent to the provider
    """

    def __init__(
        self,
        provider: Optional[ClassificationProvider] = None,
        max_content_length: Optional[int] = None,
    ):
        self.provider = provider
        self.max_content_length = max_content_length or settings.classifier_max_content_length

    def validate_content(self, content: str) -> None:
        if not isinstance(content, str) or not content.strip():
            raise ClassificationError("content is empty")
        if len(content) > self.max_content_length:
            raise ClassificationError(
                f"content is {len(content)} characters, limit is {self.max_content_length}"
            )

    def classify_with_ai(self, content: str) -> ClassificationResult:
        """Single provider attempt. Raises on any failure."""
        self.validate_content(content)
        if self.provider is None:
            raise ClassificationError("no AI provider configured")

        raw = self.provider.classify_feedback(content)
        parsed = AIClassification.model_validate(raw)

        return ClassificationResult(
            category=FeedbackCategory(parsed.category),
            sentiment=Sentiment(parsed.sentiment),
            category_confidence=clamp_confidence(parsed.category_confidence),
            sentiment_confidence=clamp_confidence(parsed.sentiment_confidence),
            reasoning=parsed.reasoning,
            analysis_method=AnalysisMethod.AI,
        )

    @track_classification
    def classify(self, content: str) -> ClassificationResult:
        start = time.perf_counter()
        try:
            result = self.classify_with_ai(content)
        except Exception as e:
            logger.warning(f"AI classification unavailable, using keyword fallback: {e}")
            result = TextAnalysisService.analyze(content if isinstance(content, str) else "")

        result.processing_time_ms = round((time.perf_counter() - start) * 1000, 2)
        return result


def build_classifier() -> FeedbackClassifier:
    """Create the process-wide classifier from settings."""
    if not settings.classifier_enabled or not settings.openai_api_key:
        logger.info("AI classification disabled, keyword fallback only")
        return FeedbackClassifier(provider=None)

    return FeedbackClassifier(provider=LLMClient())
