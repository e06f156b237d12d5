"""
Keyword fallback for feedback classification.

Used whenever the AI provider is unavailable or the content is unsuitable
for it. Pure function of the input text, so results are reproducible.
"""

from typing import List, Tuple

from feedbackhub.models.feedback import AnalysisMethod, FeedbackCategory, Sentiment
from feedbackhub.schemas.analysis_schemas import ClassificationResult

# Checked in order, first match wins
CATEGORY_RULES: List[Tuple[Tuple[str, ...], FeedbackCategory, float]] = [
    (("bug", "error", "broken", "issue", "problem", "not working"), FeedbackCategory.BUG, 0.8),
    (("feature", "add", "would like", "suggestion", "improve", "enhancement"), FeedbackCategory.FEATURE, 0.7),
]

DEFAULT_CATEGORY = FeedbackCategory.REVIEW
DEFAULT_CONFIDENCE = 0.6

POSITIVE_WORDS = [
    "great", "awesome", "love", "excellent", "amazing",
    "good", "nice", "perfect", "wonderful",
]

NEGATIVE_WORDS = [
    "hate", "terrible", "awful", "bad", "horrible",
    "worst", "sucks", "annoying", "frustrating",
]

MAX_KEYWORD_CONFIDENCE = 0.9


def match_category(text: str) -> Tuple[FeedbackCategory, float]:
    lower = text.lower()
    for keywords, category, confidence in CATEGORY_RULES:
        if any(k in lower for k in keywords):
            return category, confidence
    return DEFAULT_CATEGORY, DEFAULT_CONFIDENCE


def match_sentiment(text: str) -> Tuple[Sentiment, float]:
    # Substring checks: "goodness" counts as "good"
    lower = text.lower()
    positive = sum(1 for w in POSITIVE_WORDS if w in lower)
    negative = sum(1 for w in NEGATIVE_WORDS if w in lower)

    if positive > negative and positive > 0:
        return Sentiment.POSITIVE, min(MAX_KEYWORD_CONFIDENCE, DEFAULT_CONFIDENCE + 0.1 * positive)
    if negative > positive and negative > 0:
        return Sentiment.NEGATIVE, min(MAX_KEYWORD_CONFIDENCE, DEFAULT_CONFIDENCE + 0.1 * negative)
    return Sentiment.NEUTRAL, DEFAULT_CONFIDENCE


class TextAnalysisService:
    @staticmethod
    def analyze(text: str) -> ClassificationResult:
        """Classify feedback from fixed keyword lists."""
        text = text or ""
        category, category_confidence = match_category(text)
        sentiment, sentiment_confidence = match_sentiment(text)

        return ClassificationResult(
            category=category,
            sentiment=sentiment,
            category_confidence=round(category_confidence, 2),
            sentiment_confidence=round(sentiment_confidence, 2),
            reasoning=(
                f"Fallback analysis: detected {category.value.lower()} "
                f"with {sentiment.value.lower()} sentiment from keywords"
            ),
            analysis_method=AnalysisMethod.FALLBACK,
        )
