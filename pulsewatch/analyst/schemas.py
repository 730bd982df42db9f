"""
Pydantic schemas for content analysis and source relevance with Instructor.

These schemas enforce structured JSON output from the LLM.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class EntityType(str, Enum):
    PERSON = "person"
    ORGANIZATION = "organization"
    PRODUCT = "product"
    LOCATION = "location"
    OTHER = "other"


def _clamp_int(v, low: int, high: int) -> int:
    return max(low, min(high, int(round(float(v)))))


class Entity(BaseModel):
    """A named entity mentioned in the content."""
    name: str = Field(description="Entity name as written in the content")
    type: EntityType = Field(default=EntityType.OTHER, description="Entity category")
    importance: int = Field(default=3, description="Importance to the content, 1 (minor) to 5 (central)")

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v):
        """Unknown entity categories fall back to 'other'."""
        if isinstance(v, str) and v.lower() in {t.value for t in EntityType}:
            return v.lower()
        return EntityType.OTHER

    @field_validator("importance", mode="before")
    @classmethod
    def clamp_importance(cls, v) -> int:
        return _clamp_int(v, 1, 5)


class ImpactAssessment(BaseModel):
    """Estimated impact on the monitored subject, each 1 (none) to 5 (severe)."""
    business: int = Field(default=1, description="Business impact, 1-5")
    market: int = Field(default=1, description="Market impact, 1-5")
    reputation: int = Field(default=1, description="Reputation impact, 1-5")

    @field_validator("business", "market", "reputation", mode="before")
    @classmethod
    def clamp_scale(cls, v) -> int:
        return _clamp_int(v, 1, 5)


class ContentAnalysis(BaseModel):
    """Structured classification of one piece of scraped content."""

    summary: str = Field(description="Concise 2-3 sentence summary of the content")
    sentiment: Sentiment = Field(description="Overall sentiment toward the monitored keywords")
    sentiment_score: float = Field(
        description="Sentiment strength from -1.0 (very negative) to 1.0 (very positive)"
    )
    entities: List[Entity] = Field(default_factory=list, description="Key entities mentioned")
    topics: List[str] = Field(default_factory=list, description="Main topics covered")
    is_crisis: bool = Field(
        default=False,
        description="True if the content signals a potential crisis for the monitored subject",
    )
    is_opportunity: bool = Field(
        default=False,
        description="True if the content signals a business opportunity",
    )
    crisis_explanation: Optional[str] = Field(
        default=None, description="Why this is a crisis (only when is_crisis is true)"
    )
    opportunity_explanation: Optional[str] = Field(
        default=None, description="Why this is an opportunity (only when is_opportunity is true)"
    )
    impact_assessment: ImpactAssessment = Field(default_factory=ImpactAssessment)
    key_insights: List[str] = Field(default_factory=list, description="3-5 actionable insights")

    @field_validator("sentiment_score", mode="before")
    @classmethod
    def clamp_sentiment_score(cls, v) -> float:
        """Clamp to [-1, 1]; models occasionally return percentages."""
        score = float(v)
        if abs(score) > 1.0:
            logger.debug(f"Clamping out-of-range sentiment_score {score}")
        return max(-1.0, min(1.0, score))

    @model_validator(mode="after")
    def drop_orphan_explanations(self):
        """Explanations only make sense when their flag is set."""
        if not self.is_crisis:
            self.crisis_explanation = None
        if not self.is_opportunity:
            self.opportunity_explanation = None
        return self


class RelevanceAssessment(BaseModel):
    """How relevant a candidate source is to a profile's keywords."""
    relevance_score: float = Field(description="Relevance from 0.0 (unrelated) to 1.0 (highly relevant)")
    reasoning: str = Field(description="One or two sentences explaining the score")

    @field_validator("relevance_score", mode="before")
    @classmethod
    def clamp_score(cls, v) -> float:
        return max(0.0, min(1.0, float(v)))
