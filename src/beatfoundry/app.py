"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from beatfoundry.api.routes import thinking, tracks
from beatfoundry.core import timezone  # noqa: F401 - sets TZ=UTC
from beatfoundry.core.config import Settings, configure_logging
from beatfoundry.core.database import setup_db_session
from beatfoundry.services.asset_pipeline import AssetPipeline
from beatfoundry.services.completion import JobCompletionHandler
from beatfoundry.services.events import EventChannel
from beatfoundry.services.image_generation.cover import create_cover_generator
from beatfoundry.services.kinos.client import KinosClient
from beatfoundry.services.live_stream import LiveStreamGateway
from beatfoundry.services.orchestrator import TrackCreationOrchestrator
from beatfoundry.services.reconciler import TrackReconciler
from beatfoundry.services.suno.client import SunoClient
from beatfoundry.uow import UnitOfWorkFactory, create_uow_factory
from beatfoundry.workers.job_poller import JobTracker

logger = structlog.get_logger()


def wire_services(
    app: FastAPI,
    settings: Settings,
    uow_factory: UnitOfWorkFactory,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """Construct the service graph and store it in app.state.

    Args:
        app: Application whose state receives the services
        settings: Application settings
        uow_factory: Unit of Work factory shared by every service
        transport: Optional httpx transport for all outbound HTTP (tests inject
            a MockTransport)
    """
    timeout = settings.http_timeout_seconds

    suno = SunoClient(
        api_key=settings.suno_api_key,
        base_url=settings.suno_api_base_url,
        model=settings.suno_model,
        timeout=timeout,
        transport=transport,
    )
    kinos = KinosClient(
        api_key=settings.kinos_api_key,
        base_url=settings.kinos_api_base_url,
        blueprint_id=settings.kinos_blueprint_id,
        timeout=timeout,
        transport=transport,
    )

    event_channel = EventChannel()
    pipeline = AssetPipeline(
        uow_factory,
        create_cover_generator(settings, kinos),
        media_root=settings.media_root,
        media_url_prefix=settings.media_url_prefix,
        timeout=timeout,
        transport=transport,
    )
    completion = JobCompletionHandler(
        TrackReconciler(uow_factory, settings.placeholder_prompt), pipeline
    )
    job_tracker = JobTracker(
        suno, completion, events=event_channel, interval=settings.job_poll_interval_seconds
    )

    app.state.settings = settings
    app.state.uow_factory = uow_factory
    app.state.suno_client = suno
    app.state.kinos_client = kinos
    app.state.event_channel = event_channel
    app.state.live_stream = LiveStreamGateway(event_channel)
    app.state.completion_handler = completion
    app.state.job_tracker = job_tracker
    app.state.orchestrator = TrackCreationOrchestrator(
        kinos, suno, uow_factory, settings, job_tracker=job_tracker
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, initialize database session factory, wire services,
      resume polling for jobs left pending by a previous process
    - Shutdown: Cancel all job pollers
    """
    settings: Settings = app.state.settings

    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    app.state.session_factory = session_factory
    wire_services(app, settings, uow_factory)

    job_tracker: JobTracker = app.state.job_tracker
    if settings.resume_pending_jobs:
        try:
            await job_tracker.resume_pending(uow_factory)
        except Exception as e:
            # Log error but don't prevent startup - new jobs can still be created
            logger.error(
                "startup.resume_failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    await job_tracker.shutdown()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="BeatFoundry Backend API",
        description="Track generation and thinking-event streaming for AI musician personas",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routers (prefixes are set in the router definitions)
    app.include_router(tracks.router)
    app.include_router(thinking.router)

    # Downloaded audio and covers
    app.mount(
        settings.media_url_prefix,
        StaticFiles(directory=settings.media_root, check_dir=False),
        name="media",
    )

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
