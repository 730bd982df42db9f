"""
PulseWatch - Main Application Entry Point

Monitors keyword profiles across discovered web sources: finds sources,
scrapes them on a schedule, classifies new content with Claude and
raises alerts on crises and opportunities.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .archivist import close_db, init_db
from .common.errors import NotFoundError, PipelineError, ValidationError
from .config import settings
from .pipeline import Pipeline, build_pipeline
from .scheduler import setup_scheduler, shutdown_scheduler
from .scheduler import jobs as scheduler_module

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DASHBOARD_RECENT = 5


# ----- API Key Security -----

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)):
    """Verify API key for protected endpoints."""
    if not api_key:
        raise HTTPException(status_code=401, detail="API key required")
    if api_key not in settings.valid_api_keys:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return api_key


def get_pipeline(request: Request) -> Pipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline


# ----- Request / Response Models -----

class DiscoverRequest(BaseModel):
    profile_id: Optional[int] = None


class ScrapeRequest(BaseModel):
    source_id: Optional[int] = None


class AnalyzeRequest(BaseModel):
    raw_content_id: Optional[int] = None
    generate_embedding: bool = True


class GenerateAlertRequest(BaseModel):
    insight_id: Optional[int] = None
    profile_id: Optional[int] = None
    severity: Optional[str] = None
    title: Optional[str] = None


class AlertUpdateRequest(BaseModel):
    status: Optional[str] = None
    user_notes: Optional[str] = None


class CycleResponse(BaseModel):
    success: bool
    message: str
    timestamp: datetime
    profiles_processed: int
    profiles_failed: int
    discovery_failures: int
    sources_scraped: int
    sources_failed: int
    skipped: bool


class AddedSource(BaseModel):
    id: int
    name: str
    url: str
    source_type: str
    relevance_score: Optional[float] = None


class DiscoverResponse(BaseModel):
    success: bool = True
    message: str
    added_sources: List[AddedSource]


class ScrapeResponse(BaseModel):
    success: bool = True
    message: str
    content_id: int
    content_hash: str
    is_duplicate: bool
    snapshot_url: Optional[str] = None
    screenshot_url: Optional[str] = None


class AnalyzeResponse(BaseModel):
    success: bool = True
    message: str
    insight_id: Optional[int] = None
    alert_id: Optional[int] = None
    alert_generated: bool
    summary: Optional[str] = None


class GenerateAlertResponse(BaseModel):
    success: bool = True
    message: str
    alert_id: int
    notification_sent: bool
    channels_notified: List[str]


class AlertResponse(BaseModel):
    id: int
    profile_id: int
    insight_id: int
    severity: str
    title: str
    status: str
    user_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class SimilarInsightResponse(BaseModel):
    insight_id: int
    summary: str
    sentiment: str
    similarity: float


class InsightResponse(BaseModel):
    id: int
    raw_content_id: int
    source_id: int
    profile_id: int
    summary: str
    sentiment: str
    sentiment_score: float
    entities: List[Dict[str, Any]] = []
    topics: List[str] = []
    is_crisis: bool
    is_opportunity: bool
    crisis_explanation: Optional[str] = None
    opportunity_explanation: Optional[str] = None
    impact_assessment: Dict[str, int] = {}
    key_insights: List[str] = []
    processed_at: datetime


class DashboardResponse(BaseModel):
    profile_id: int
    profile_name: str
    alert_counts: Dict[str, int]
    recent_alerts: List[AlertResponse]
    recent_insights: List[InsightResponse]



class NotificationResponse(BaseModel):
    id: int
    type: str
    payload: Dict[str, Any]
    read: bool
    created_at: datetime


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    storage_backend: str
    queue_running: bool
    queue_pending: int
    scheduler_running: bool


def _alert_response(alert) -> AlertResponse:
    return AlertResponse(
        id=alert.id,
        profile_id=alert.profile_id,
        insight_id=alert.insight_id,
        severity=alert.severity,
        title=alert.title,
        status=alert.status,
        user_notes=alert.user_notes,
        created_at=alert.created_at,
        updated_at=alert.updated_at,
    )


def _insight_response(insight) -> InsightResponse:
    return InsightResponse(
        id=insight.id,
        raw_content_id=insight.raw_content_id,
        source_id=insight.source_id,
        profile_id=insight.profile_id,
        summary=insight.summary,
        sentiment=insight.sentiment,
        sentiment_score=insight.sentiment_score,
        entities=insight.entities or [],
        topics=insight.topics or [],
        is_crisis=insight.is_crisis,
        is_opportunity=insight.is_opportunity,
        crisis_explanation=insight.crisis_explanation,
        opportunity_explanation=insight.opportunity_explanation,
        impact_assessment=insight.impact_assessment or {},
        key_insights=insight.key_insights or [],
        processed_at=insight.processed_at,
    )



def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


# ----- Application Factory -----

def create_app(pipeline: Optional[Pipeline] = None, start_scheduler: Optional[bool] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Without an injected pipeline one is assembled from settings during
    startup (DB init for the SQL backend, then queue and scheduler).
    """
    owns_pipeline = pipeline is None
    run_scheduler = settings.scheduler_enabled if start_scheduler is None else start_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        print("Starting PulseWatch...")

        if app.state.pipeline is None:
            if settings.storage_backend == "sql":
                try:
                    await init_db()
                    print("Database tables ready")
                except Exception as e:
                    print(f"Warning: Could not initialize database: {e}")
            app.state.pipeline = build_pipeline()

        await app.state.pipeline.start()

        if run_scheduler:
            try:
                setup_scheduler(app.state.pipeline)
                print(f"Scheduler started - monitoring cycle every {settings.cycle_interval_minutes} min")
            except Exception as e:
                print(f"Warning: Could not start scheduler: {e}")

        yield

        print("Shutting down...")
        shutdown_scheduler()

        try:
            await app.state.pipeline.close()
            print("Pipeline closed")
        except Exception as e:
            print(f"Warning: Error closing pipeline: {e}")

        if owns_pipeline and settings.storage_backend == "sql":
            try:
                await close_db()
                print("Database connections closed")
            except Exception as e:
                print(f"Warning: Error closing database: {e}")

    app = FastAPI(
        title="PulseWatch",
        description="Keyword monitoring with AI analysis and alerting",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    # GZip compression for responses > 500 bytes
    app.add_middleware(GZipMiddleware, minimum_size=500)

    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]
    if settings.frontend_url:
        allowed_origins.append(settings.frontend_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI):
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return _error(400, f"Invalid request: {details}")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
        return _error(500, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))


def _register_routes(app: FastAPI):

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        pipeline = getattr(request.app.state, "pipeline", None)
        return HealthResponse(
            status="healthy" if pipeline is not None else "starting",
            timestamp=datetime.now(timezone.utc),
            storage_backend=settings.storage_backend,
            queue_running=bool(pipeline and pipeline.queue.running),
            queue_pending=pipeline.queue.pending() if pipeline else 0,
            scheduler_running=bool(scheduler_module.scheduler and scheduler_module.scheduler.running),
        )

    @app.post("/cycle/run", response_model=CycleResponse)
    async def run_cycle(
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        """
        Run one monitoring cycle now.

        Requires API key. Returns 500 when the due profiles could not be loaded.
        """
        report = await pipeline.scheduler.run_cycle()
        if not report.success:
            return _error(500, report.message)
        return CycleResponse(
            success=True,
            message=report.message,
            timestamp=report.finished_at or report.started_at,
            profiles_processed=report.profiles_processed,
            profiles_failed=report.profiles_failed,
            discovery_failures=report.discovery_failures,
            sources_scraped=report.sources_scraped,
            sources_failed=report.sources_failed,
            skipped=report.skipped,
        )

    @app.post("/sources/discover", response_model=DiscoverResponse)
    async def discover_sources(
        body: DiscoverRequest,
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        """Search for new sources for a profile and keep the relevant ones."""
        result = await pipeline.discoverer.discover(body.profile_id)
        return DiscoverResponse(
            message=result.message,
            added_sources=[
                AddedSource(
                    id=source.id,
                    name=source.name,
                    url=source.url,
                    source_type=source.source_type,
                    relevance_score=source.relevance_score,
                )
                for source in result.added_sources
            ],
        )

    @app.post("/sources/scrape", response_model=ScrapeResponse)
    async def scrape_source(
        body: ScrapeRequest,
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        result = await pipeline.scraper.scrape(body.source_id)
        return ScrapeResponse(
            message=result.message,
            content_id=result.content_id,
            content_hash=result.content_hash,
            is_duplicate=result.is_duplicate,
            snapshot_url=result.snapshot_url,
            screenshot_url=result.screenshot_url,
        )

    @app.post("/content/analyze", response_model=AnalyzeResponse)
    async def analyze_content(
        body: AnalyzeRequest,
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        outcome = await pipeline.analyzer.analyze(body.raw_content_id, body.generate_embedding)
        return AnalyzeResponse(
            message=outcome.message,
            insight_id=outcome.insight_id,
            alert_id=outcome.alert_id,
            alert_generated=outcome.alert_generated,
            summary=outcome.summary,
        )

    @app.post("/alerts/generate", response_model=GenerateAlertResponse)
    async def generate_alert(
        body: GenerateAlertRequest,
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        result = await pipeline.alerts.generate_alert(
            body.insight_id, body.profile_id, body.severity, body.title
        )
        return GenerateAlertResponse(
            message=result.message,
            alert_id=result.alert_id,
            notification_sent=result.notification_sent,
            channels_notified=result.channels_notified,
        )

    @app.get("/alerts", response_model=List[AlertResponse])
    async def list_alerts(
        profile_id: int = Query(...),
        status: Optional[str] = Query(None),
        limit: int = Query(50, ge=1, le=500),
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        alerts = await pipeline.stores.alerts.list_for_profile(profile_id, status=status, limit=limit)
        return [_alert_response(alert) for alert in alerts]

    @app.get("/alerts/counts")
    async def alert_counts(
        profile_id: int = Query(...),
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        """Alert counts per severity for one profile."""
        counts = await pipeline.stores.alerts.counts_by_severity(profile_id)
        return {"profile_id": profile_id, "counts": counts}

    @app.get("/alerts/{alert_id}", response_model=AlertResponse)
    async def get_alert(
        alert_id: int,
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        alert = await pipeline.stores.alerts.get(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        return _alert_response(alert)

    @app.patch("/alerts/{alert_id}", response_model=AlertResponse)
    async def update_alert(
        alert_id: int,
        body: AlertUpdateRequest,
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        alert = await pipeline.alerts.update_status(alert_id, body.status, body.user_notes)
        return _alert_response(alert)

    @app.get("/insights/{insight_id}", response_model=InsightResponse)
    async def get_insight(
        insight_id: int,
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        insight = await pipeline.stores.insights.get(insight_id)
        if insight is None:
            raise NotFoundError("Insight", insight_id)
        return _insight_response(insight)

    @app.get("/profiles/{profile_id}/insights", response_model=List[InsightResponse])
    async def list_profile_insights(
        profile_id: int,
        limit: int = Query(50, ge=1, le=500),
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        insights = await pipeline.stores.insights.list_for_profile(profile_id, limit=limit)
        return [_insight_response(insight) for insight in insights]

    @app.get("/profiles/{profile_id}/dashboard", response_model=DashboardResponse)
    async def profile_dashboard(
        profile_id: int,
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        """Severity counts plus the latest alerts and insights for one profile."""
        profile = await pipeline.stores.profiles.get(profile_id)
        if profile is None:
            raise NotFoundError("Profile", profile_id)
        counts = await pipeline.stores.alerts.counts_by_severity(profile_id)
        alerts = await pipeline.stores.alerts.list_for_profile(profile_id, limit=DASHBOARD_RECENT)
        insights = await pipeline.stores.insights.list_for_profile(profile_id, limit=DASHBOARD_RECENT)
        return DashboardResponse(
            profile_id=profile.id,
            profile_name=profile.name,
            alert_counts=counts,
            recent_alerts=[_alert_response(alert) for alert in alerts],
            recent_insights=[_insight_response(insight) for insight in insights],
        )

    @app.get("/insights/{insight_id}/similar", response_model=List[SimilarInsightResponse])

    async def similar_insights(
        insight_id: int,
        threshold: Optional[float] = Query(None, ge=0.0, le=1.0),
        limit: Optional[int] = Query(None, ge=1, le=50),
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        matches = await pipeline.analyzer.similar_insights(insight_id, threshold=threshold, limit=limit)
        return [
            SimilarInsightResponse(
                insight_id=insight.id,
                summary=insight.summary,
                sentiment=insight.sentiment,
                similarity=round(score, 4),
            )
            for insight, score in matches
        ]

    @app.get("/notifications", response_model=List[NotificationResponse])
    async def list_notifications(
        user_id: str = Query(...),
        unread_only: bool = Query(False),
        limit: int = Query(50, ge=1, le=500),
        pipeline: Pipeline = Depends(get_pipeline),
        api_key: str = Depends(verify_api_key),
    ):
        notifications = await pipeline.stores.notifications.list_for_user(
            user_id, unread_only=unread_only, limit=limit
        )
        return [
            NotificationResponse(
                id=n.id, type=n.type, payload=n.payload, read=n.read, created_at=n.created_at
            )
            for n in notifications
        ]


app = create_app()


# ----- CLI Runner -----

def run_server():
    """Run the FastAPI server."""
    import uvicorn
    uvicorn.run(
        "pulsewatch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    run_server()
