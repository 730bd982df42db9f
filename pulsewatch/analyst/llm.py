"""
LLM-backed capabilities.

- AnthropicContentAnalyzer: Claude + Instructor -> ContentAnalysis
- AnthropicRelevanceScorer: Claude + Instructor -> RelevanceAssessment
- OpenAIEmbedder: OpenAI embeddings for similarity search

All raise ExternalServiceError; `transient` is set for timeouts, rate limits,
connection errors and 5xx so the task queue can retry them.
"""

import logging
from typing import List, Optional

import httpx
import instructor
from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    RateLimitError,
)
from instructor.core import InstructorRetryException

from ..common.capabilities import AnalysisRequest, RelevanceVerdict, SourceCandidate
from ..common.errors import ExternalServiceError
from ..config.settings import settings
from .schemas import ContentAnalysis, RelevanceAssessment

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = """You are a media-monitoring analyst. You read content scraped from a web
source and classify it for a team tracking specific keywords.

Return:
1. A concise 2-3 sentence summary.
2. Sentiment toward the monitored keywords (positive, neutral, negative) and a score from
   -1.0 (very negative) to 1.0 (very positive).
3. Key entities (person, organization, product, location, other) with importance 1-5.
4. Main topics.
5. is_crisis: true only for credible signs of a crisis (safety incidents, lawsuits, outages,
   scandals, sharp public backlash). Explain why in crisis_explanation.
6. is_opportunity: true for concrete business opportunities (partnerships, unmet demand,
   competitor weakness, favorable regulation). Explain why in opportunity_explanation.
7. Impact assessment (business, market, reputation), each 1 (none) to 5 (severe).
8. 3-5 actionable key insights.

Be conservative: routine news is neither a crisis nor an opportunity."""

RELEVANCE_SYSTEM_PROMPT = """You evaluate whether a web source is worth monitoring for a set of
keywords. Score 0.0 (unrelated) to 1.0 (highly relevant, likely to publish about these keywords
regularly). Consider the site's focus, authority, and how directly it covers the keywords."""


def _anthropic_error(service: str, e: Exception) -> ExternalServiceError:
    """Map Anthropic/Instructor exceptions onto the pipeline taxonomy."""
    if isinstance(e, (APITimeoutError, APIConnectionError, RateLimitError)):
        return ExternalServiceError(service, f"{type(e).__name__}: {e}", transient=True)
    if isinstance(e, APIStatusError):
        return ExternalServiceError(service, f"HTTP {e.status_code}: {e}", transient=e.status_code >= 500)
    if isinstance(e, InstructorRetryException):
        return ExternalServiceError(service, f"unparseable model output: {e}")
    return ExternalServiceError(service, f"{type(e).__name__}: {e}")


def create_instructor_client() -> instructor.AsyncInstructor:
    """Instructor-wrapped async Claude client with timeouts at the client level."""
    anthropic_client = AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=httpx.Timeout(settings.llm_timeout, connect=settings.llm_connect_timeout),
        max_retries=settings.llm_max_retries,
    )
    return instructor.from_anthropic(anthropic_client)


def build_analysis_prompt(request: AnalysisRequest) -> str:
    keywords = ", ".join(request.keywords) if request.keywords else "(none)"
    return (
        f"SOURCE URL: {request.source_url}\n"
        f"SOURCE TYPE: {request.source_type}\n"
        f"MONITORING KEYWORDS: {keywords}\n\n"
        f"CONTENT:\n{request.text}"
    )


class AnthropicContentAnalyzer:
    def __init__(self, client: Optional[instructor.AsyncInstructor] = None):
        self.client = client or create_instructor_client()

    async def analyze(self, request: AnalysisRequest) -> ContentAnalysis:
        try:
            analysis, completion = await self.client.messages.create_with_completion(
                model=settings.llm_model,
                max_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature,
                system=ANALYSIS_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_analysis_prompt(request)}],
                response_model=ContentAnalysis,
            )
        except Exception as e:
            raise _anthropic_error("analysis", e) from e

        usage = getattr(completion, "usage", None)
        if usage is not None:
            logger.debug(f"Claude analysis tokens: in={usage.input_tokens}, out={usage.output_tokens}")
        return analysis


class AnthropicRelevanceScorer:
    def __init__(self, client: Optional[instructor.AsyncInstructor] = None):
        self.client = client or create_instructor_client()

    async def score(self, candidate: SourceCandidate, keywords: List[str]) -> RelevanceVerdict:
        prompt = (
            f"KEYWORDS: {', '.join(keywords)}\n\n"
            f"SOURCE NAME: {candidate.title}\n"
            f"SOURCE URL: {candidate.url}\n"
            f"SOURCE TYPE: {candidate.source_type or 'unknown'}\n"
            f"DESCRIPTION: {candidate.description or '(none)'}"
        )
        try:
            assessment = await self.client.messages.create(
                model=settings.llm_model,
                max_tokens=512,
                temperature=0.0,
                system=RELEVANCE_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                response_model=RelevanceAssessment,
            )
        except Exception as e:
            raise _anthropic_error("relevance", e) from e
        return RelevanceVerdict(score=assessment.relevance_score, rationale=assessment.reasoning)


class OpenAIEmbedder:
    """OpenAI embeddings. The client is created on first use."""

    def __init__(self, client=None, model: Optional[str] = None, dimensions: Optional[int] = None):
        self._client = client
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key or None,
                timeout=settings.embedding_timeout,
            )
        return self._client

    async def embed(self, text: str) -> List[float]:
        import openai

        try:
            response = await self._get_client().embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions,
            )
        except (openai.APITimeoutError, openai.APIConnectionError, openai.RateLimitError) as e:
            raise ExternalServiceError("embedding", f"{type(e).__name__}: {e}", transient=True) from e
        except openai.OpenAIError as e:
            raise ExternalServiceError("embedding", f"{type(e).__name__}: {e}") from e
        return list(response.data[0].embedding)
