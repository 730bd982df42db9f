"""
Alert policy: does an analysis warrant an alert for this profile, and how bad is it?

| sensitivity | alert when                                                        |
|-------------|-------------------------------------------------------------------|
| low         | crisis                                                            |
| medium      | crisis, opportunity, or negative sentiment with score < -0.7      |
| high        | any medium condition, or business impact > 3                      |

Severity/title follow the first matching signal: crisis -> critical,
opportunity -> medium, strong negative -> high, otherwise low.
"""

from dataclasses import dataclass
from typing import Optional

from ..archivist.models import Sensitivity, Severity
from .schemas import ContentAnalysis, Sentiment

STRONG_NEGATIVE_THRESHOLD = -0.7
HIGH_BUSINESS_IMPACT = 3
TITLE_SUMMARY_CHARS = 100


@dataclass(frozen=True)
class AlertDecision:
    severity: Severity
    title: str


def is_strong_negative(analysis: ContentAnalysis) -> bool:
    return (
        analysis.sentiment == Sentiment.NEGATIVE
        and analysis.sentiment_score < STRONG_NEGATIVE_THRESHOLD
    )


def should_alert(analysis: ContentAnalysis, sensitivity: str) -> bool:
    try:
        level = Sensitivity(sensitivity)
    except ValueError:
        level = Sensitivity.MEDIUM

    if analysis.is_crisis:
        return True
    if level == Sensitivity.LOW:
        return False
    if analysis.is_opportunity or is_strong_negative(analysis):
        return True
    return level == Sensitivity.HIGH and analysis.impact_assessment.business > HIGH_BUSINESS_IMPACT


def classify_alert(analysis: ContentAnalysis) -> AlertDecision:
    summary = (analysis.summary or "").strip()[:TITLE_SUMMARY_CHARS]
    if analysis.is_crisis:
        return AlertDecision(Severity.CRITICAL, f"CRISIS ALERT: {summary}")
    if analysis.is_opportunity:
        return AlertDecision(Severity.MEDIUM, f"OPPORTUNITY: {summary}")
    if is_strong_negative(analysis):
        return AlertDecision(Severity.HIGH, f"NEGATIVE SENTIMENT: {summary}")
    return AlertDecision(Severity.LOW, f"INSIGHT: {summary}")


def evaluate_alert(analysis: ContentAnalysis, sensitivity: Optional[str]) -> Optional[AlertDecision]:
    """The alert to raise, or None. Unknown sensitivity is treated as medium."""
    if not should_alert(analysis, sensitivity or Sensitivity.MEDIUM.value):
        return None
    return classify_alert(analysis)
