from .schemas import (
    ContentAnalysis,
    Entity,
    EntityType,
    ImpactAssessment,
    RelevanceAssessment,
    Sentiment,
)
from .policy import AlertDecision, evaluate_alert, should_alert, classify_alert
from .analyzer import AIAnalyzer, AnalysisOutcome, truncate_content

__all__ = [
    "ContentAnalysis",
    "Entity",
    "EntityType",
    "ImpactAssessment",
    "RelevanceAssessment",
    "Sentiment",
    "AlertDecision",
    "evaluate_alert",
    "should_alert",
    "classify_alert",
    "AIAnalyzer",
    "AnalysisOutcome",
    "truncate_content",
]
