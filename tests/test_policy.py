"""
Tests for the alert policy: which analyses raise alerts at which sensitivity,
and the severity/title derived for them.
"""

import pytest

from pulsewatch.analyst.policy import (
    TITLE_SUMMARY_CHARS,
    classify_alert,
    evaluate_alert,
    should_alert,
)
from pulsewatch.analyst.schemas import ImpactAssessment
from pulsewatch.archivist.models import Severity

from tests.test_helpers import make_analysis


CRISIS = make_analysis(is_crisis=True, sentiment="negative", sentiment_score=-0.9)
OPPORTUNITY = make_analysis(is_opportunity=True, sentiment="positive", sentiment_score=0.6)
STRONG_NEGATIVE = make_analysis(sentiment="negative", sentiment_score=-0.8)
MILD_NEGATIVE = make_analysis(sentiment="negative", sentiment_score=-0.5)
HIGH_IMPACT = make_analysis(impact_assessment=ImpactAssessment(business=4, market=1, reputation=1))
BORDERLINE_IMPACT = make_analysis(impact_assessment=ImpactAssessment(business=3, market=5, reputation=5))
QUIET = make_analysis()


class TestShouldAlert:

    @pytest.mark.parametrize("analysis,low,medium,high", [
        (CRISIS, True, True, True),
        (OPPORTUNITY, False, True, True),
        (STRONG_NEGATIVE, False, True, True),
        (MILD_NEGATIVE, False, False, False),
        (HIGH_IMPACT, False, False, True),
        (BORDERLINE_IMPACT, False, False, False),
        (QUIET, False, False, False),
    ])
    def test_policy_table(self, analysis, low, medium, high):
        assert should_alert(analysis, "low") is low
        assert should_alert(analysis, "medium") is medium
        assert should_alert(analysis, "high") is high

    def test_negative_threshold_is_strict(self):
        """-0.7 exactly is not a strong negative."""
        at_threshold = make_analysis(sentiment="negative", sentiment_score=-0.7)
        assert should_alert(at_threshold, "medium") is False

    def test_low_score_needs_negative_label(self):
        mislabeled = make_analysis(sentiment="neutral", sentiment_score=-0.9)
        assert should_alert(mislabeled, "medium") is False

    def test_unknown_sensitivity_acts_as_medium(self):
        assert should_alert(OPPORTUNITY, "extreme") is True
        assert should_alert(HIGH_IMPACT, "extreme") is False


class TestClassifyAlert:

    def test_crisis_wins(self):
        both = make_analysis(is_crisis=True, is_opportunity=True, sentiment="negative", sentiment_score=-0.9)
        decision = classify_alert(both)
        assert decision.severity == Severity.CRITICAL
        assert decision.title.startswith("CRISIS ALERT: ")

    def test_opportunity(self):
        decision = classify_alert(OPPORTUNITY)
        assert decision.severity == Severity.MEDIUM
        assert decision.title.startswith("OPPORTUNITY: ")

    def test_strong_negative(self):
        decision = classify_alert(STRONG_NEGATIVE)
        assert decision.severity == Severity.HIGH
        assert decision.title.startswith("NEGATIVE SENTIMENT: ")

    def test_fallback_insight(self):
        decision = classify_alert(HIGH_IMPACT)
        assert decision.severity == Severity.LOW
        assert decision.title.startswith("INSIGHT: ")

    def test_title_bounded(self):
        long_summary = make_analysis(is_crisis=True, summary="x" * 500)
        decision = classify_alert(long_summary)
        assert decision.title == "CRISIS ALERT: " + "x" * TITLE_SUMMARY_CHARS


class TestEvaluateAlert:

    def test_crisis_high_sensitivity_is_critical(self):
        decision = evaluate_alert(CRISIS, "high")
        assert decision is not None
        assert decision.severity == Severity.CRITICAL
        assert decision.title.startswith("CRISIS ALERT:")

    def test_neutral_low_impact_high_sensitivity_no_alert(self):
        quiet = make_analysis(
            sentiment="neutral",
            sentiment_score=0.1,
            impact_assessment=ImpactAssessment(business=1, market=1, reputation=1),
        )
        assert evaluate_alert(quiet, "high") is None

    def test_missing_sensitivity_defaults_to_medium(self):
        assert evaluate_alert(OPPORTUNITY, None) is not None
        assert evaluate_alert(HIGH_IMPACT, None) is None
