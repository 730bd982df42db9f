"""
Narrow interfaces to external services, one async method each.

Pipeline stages depend on these protocols; concrete implementations live
next to the stage that uses them (harvester.source_search,
harvester.fetchers, analyst.llm, alerting.channels, harvester.object_store).
Implementations raise ExternalServiceError on failure.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol

if TYPE_CHECKING:
    from ..analyst.schemas import ContentAnalysis


@dataclass
class SourceCandidate:
    """A URL proposed by the discovery capability."""
    url: str
    title: str
    description: str = ""
    source_type: Optional[str] = None


@dataclass
class RelevanceVerdict:
    score: float  # 0.0 - 1.0
    rationale: str


@dataclass
class ScrapeConfig:
    """Per-source scrape options (stored as JSON on DataSource)."""
    selectors: List[str] = field(default_factory=list)
    capture_screenshot: bool = False
    save_html: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ScrapeConfig":
        data = data or {}
        return cls(
            selectors=list(data.get("selectors") or []),
            capture_screenshot=bool(data.get("capture_screenshot", False)),
            save_html=bool(data.get("save_html", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selectors": list(self.selectors),
            "capture_screenshot": self.capture_screenshot,
            "save_html": self.save_html,
        }


@dataclass
class FetchResult:
    url: str
    text: str
    html: Optional[str] = None
    screenshot: Optional[bytes] = None
    status_code: Optional[int] = None


@dataclass
class AnalysisRequest:
    text: str
    source_url: str
    source_type: str
    keywords: List[str]


@dataclass
class MailMessage:
    to: str
    subject: str
    html: str
    text: Optional[str] = None


class SourceDiscovery(Protocol):
    async def discover(self, keywords: List[str], limit: int) -> List[SourceCandidate]: ...


class RelevanceScorer(Protocol):
    async def score(self, candidate: SourceCandidate, keywords: List[str]) -> RelevanceVerdict: ...


class PageFetcher(Protocol):
    async def fetch(self, url: str, config: ScrapeConfig) -> FetchResult: ...


class ContentAnalyzer(Protocol):
    async def analyze(self, request: AnalysisRequest) -> "ContentAnalysis": ...


class Embedder(Protocol):
    async def embed(self, text: str) -> List[float]: ...


class ObjectStore(Protocol):
    async def put(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Store bytes and return a reference (URL or path) to them."""
        ...


class Mailer(Protocol):
    async def send(self, message: MailMessage) -> None: ...


class EventPublisher(Protocol):
    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None: ...
