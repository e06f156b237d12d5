"""Tests for the keyword fallback classifier."""

import pytest

from feedbackhub.models.feedback import AnalysisMethod, FeedbackCategory, Sentiment
from feedbackhub.services.text_service import (
    CATEGORY_RULES,
    TextAnalysisService,
    match_category,
    match_sentiment,
)


class TestCategoryRules:
    """Ordered keyword rules, first match wins."""

    def test_bug_rule_is_checked_first(self):
        assert CATEGORY_RULES[0][1] == FeedbackCategory.BUG
        assert CATEGORY_RULES[1][1] == FeedbackCategory.FEATURE

    @pytest.mark.parametrize("text", [
        "Found a bug",
        "ERROR when saving",
        "the form is broken",
        "login is not working",
    ])
    def test_bug_keywords(self, text):
        assert match_category(text) == (FeedbackCategory.BUG, 0.8)

    @pytest.mark.parametrize("text", [
        "New feature idea",
        "I would like an export",
        "Suggestion: dark mode",
        "please improve search",
    ])
    def test_feature_keywords(self, text):
        assert match_category(text) == (FeedbackCategory.FEATURE, 0.7)

    def test_default_is_review(self):
        assert match_category("Thanks for the quick reply") == (FeedbackCategory.REVIEW, 0.6)

    def test_substring_match(self):
        """Matching is not tokenized: 'address' contains 'add'."""
        category, _ = match_category("Where is your address?")
        assert category == FeedbackCategory.FEATURE


class TestSentiment:
    def test_neutral_default(self):
        assert match_sentiment("It is a website") == (Sentiment.NEUTRAL, 0.6)

    def test_one_positive_word(self):
        sentiment, confidence = match_sentiment("Great job")
        assert sentiment == Sentiment.POSITIVE
        assert confidence == pytest.approx(0.7)

    def test_confidence_capped(self):
        sentiment, confidence = match_sentiment("great awesome love excellent amazing perfect")
        assert sentiment == Sentiment.POSITIVE
        assert confidence == 0.9

    def test_negative_words(self):
        sentiment, confidence = match_sentiment("Terrible and annoying")
        assert sentiment == Sentiment.NEGATIVE
        assert confidence == pytest.approx(0.8)

    def test_tie_stays_neutral(self):
        assert match_sentiment("good but bad")[0] == Sentiment.NEUTRAL


class TestAnalyze:
    def test_result_shape(self):
        result = TextAnalysisService.analyze("  The checkout is broken,   terrible  ")

        assert result.analysis_method == AnalysisMethod.FALLBACK
        assert result.category == FeedbackCategory.BUG
        assert result.sentiment == Sentiment.NEGATIVE
        assert result.category_confidence == 0.8
        assert result.sentiment_confidence == 0.7
        assert result.reasoning == (
            "Fallback analysis: detected bug with negative sentiment from keywords"
        )

    def test_empty_text(self):
        result = TextAnalysisService.analyze("")
        assert result.category == FeedbackCategory.REVIEW
        assert result.sentiment == Sentiment.NEUTRAL

    def test_keywords_match_text_as_given(self):
        """A line break splits "not working", so it is not a bug phrase."""
        result = TextAnalysisService.analyze("Checkout is not\nworking")
        assert result.category == FeedbackCategory.REVIEW

    def test_match_is_case_insensitive(self):
        result = TextAnalysisService.analyze("Checkout is NOT WORKING")
        assert result.category == FeedbackCategory.BUG
