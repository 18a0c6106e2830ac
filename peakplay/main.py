"""
PeakPlay - Top Songs API
Daily global top tracks scraped from the chart listing and enriched via Spotify.
"""
import hmac
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings
from peakplay import __version__
from peakplay.cache import RefreshOrchestrator
from peakplay.errors import AuthError, NoDataAvailable
from peakplay.models import tracks_to_payload
from peakplay.service import build_orchestrator, build_scheduler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("api")

APP_NAME = "Top Songs API"


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[RefreshOrchestrator] = None,
) -> FastAPI:
    """
    Build the application.

    Startup (lifespan) validates credentials and aborts with ConfigError
    when any is missing, then wires the orchestrator and scheduler.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.require_credentials()
        if app.state.orchestrator is None:
            app.state.orchestrator = build_orchestrator(settings)

        scheduler = None
        if settings.scheduler_enabled:
            scheduler = build_scheduler(settings, app.state.orchestrator)
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.stop()

    app = FastAPI(
        title=APP_NAME,
        description="Daily top 100 tracks with Spotify metadata",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc), "message": exc.hint},
        )

    @app.exception_handler(NoDataAvailable)
    async def no_data_handler(request: Request, exc: NoDataAvailable):
        return JSONResponse(status_code=503, content={"error": "Failed to fetch song data"})

    def get_app_orchestrator(request: Request) -> RefreshOrchestrator:
        if request.app.state.orchestrator is None:
            request.app.state.orchestrator = build_orchestrator(settings)
        return request.app.state.orchestrator

    def authenticate_token(request: Request) -> None:
        """Bearer token check. Rejected requests never reach the orchestrator."""
        auth_header = request.headers.get("authorization")
        if not auth_header:
            raise AuthError(
                "No authorization header provided",
                status_code=401,
                hint="Include Authorization: Bearer <token> header",
            )

        parts = auth_header.split(" ")
        token = parts[1] if len(parts) > 1 else ""
        if not token:
            raise AuthError(
                "Invalid authorization header format",
                status_code=401,
                hint="Use format: Bearer <token>",
            )

        expected = settings.api_token or ""
        if not expected or not hmac.compare_digest(token.encode(), expected.encode()):
            raise AuthError(
                "Invalid or expired token",
                status_code=403,
                hint="The provided token is not valid",
            )

    @app.get("/")
    def service_info():
        """Public service description."""
        return {
            "service": APP_NAME,
            "status": "running",
            "endpoints": [
                "/api/top-songs (GET) - Get top 100 songs (requires auth)",
                "/api/cache-schedule (GET) - Check cache schedule (requires auth)",
                "/api/cache-status (GET) - Check cache status (requires auth)",
            ],
            "authentication": "Use Authorization: Bearer <token> header",
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": APP_NAME,
        }

    @app.get("/api/top-songs", dependencies=[Depends(authenticate_token)])
    def top_songs(orchestrator: RefreshOrchestrator = Depends(get_app_orchestrator)):
        """
        Ordered top tracks, served from cache when fresh, refreshed
        otherwise, and served stale if the refresh fails.
        """
        tracks = orchestrator.read(settings.cache_key, timeout=settings.request_timeout_seconds * 4)
        return tracks_to_payload(tracks)

    @app.get("/api/cache-status", dependencies=[Depends(authenticate_token)])
    def cache_status(orchestrator: RefreshOrchestrator = Depends(get_app_orchestrator)):
        """How the freshness policy sees the current entry. No side effects."""
        return orchestrator.status(settings.cache_key).to_dict()

    @app.get("/api/cache-schedule", dependencies=[Depends(authenticate_token)])
    def cache_schedule(orchestrator: RefreshOrchestrator = Depends(get_app_orchestrator)):
        """Next scheduled refresh time."""
        return orchestrator.schedule_info()

    return app


app = create_app()
