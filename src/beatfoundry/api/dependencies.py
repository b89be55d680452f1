"""FastAPI dependencies resolving shared services from app.state.

Everything here is constructed once in the application lifespan (see
beatfoundry.app.wire_services) and stored on ``app.state``.
"""

from fastapi import Request

from beatfoundry.core.config import Settings
from beatfoundry.services.completion import JobCompletionHandler
from beatfoundry.services.events import EventChannel
from beatfoundry.services.kinos.client import KinosClient
from beatfoundry.services.live_stream import LiveStreamGateway
from beatfoundry.services.orchestrator import TrackCreationOrchestrator
from beatfoundry.services.suno.client import SunoClient
from beatfoundry.uow import UnitOfWorkFactory
from beatfoundry.workers.job_poller import JobTracker


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded at startup."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> UnitOfWorkFactory:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.tracks.list_by_foundry(foundry_id)
    """
    return request.app.state.uow_factory


def get_event_channel(request: Request) -> EventChannel:
    return request.app.state.event_channel


def get_live_stream(request: Request) -> LiveStreamGateway:
    return request.app.state.live_stream


def get_job_tracker(request: Request) -> JobTracker:
    return request.app.state.job_tracker


def get_completion_handler(request: Request) -> JobCompletionHandler:
    return request.app.state.completion_handler


def get_orchestrator(request: Request) -> TrackCreationOrchestrator:
    return request.app.state.orchestrator


def get_suno_client(request: Request) -> SunoClient:
    return request.app.state.suno_client


def get_kinos_client(request: Request) -> KinosClient:
    return request.app.state.kinos_client
