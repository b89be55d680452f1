"""Track endpoints for a foundry.

- GET  /api/foundries/{foundry_id}/tracks - List tracks (newest first)
- POST /api/foundries/{foundry_id}/tracks - Design and submit a new track
- GET  /api/foundries/{foundry_id}/tracks/status - Query a synthesis job
- POST /api/foundries/{foundry_id}/tracks/callback - Synthesis completion callback
- POST /api/foundries/{foundry_id}/tracks/save-from-status - Client-driven reconciliation
- GET/POST /api/foundries/{foundry_id}/tracks/{track_id}/reactions - Track reactions
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from beatfoundry.api.dependencies import (
    get_completion_handler,
    get_job_tracker,
    get_orchestrator,
    get_suno_client,
    get_uow_factory,
)
from beatfoundry.models.track import SUPPORTED_REACTIONS, Track
from beatfoundry.services.completion import JobCompletionHandler
from beatfoundry.services.exceptions import (
    AgentResponseParseError,
    PermanentError,
    ServiceError,
    TransientError,
)
from beatfoundry.services.orchestrator import TrackCreationOrchestrator
from beatfoundry.services.suno.client import SunoClient
from beatfoundry.services.suno.payloads import extract_callback_assets, parse_assets
from beatfoundry.workers.job_poller import JobTracker

logger = structlog.get_logger()
router = APIRouter(prefix="/api/foundries/{foundry_id}/tracks", tags=["tracks"])


# Request/Response Models


class CreateTrackRequest(BaseModel):
    """Request model for track creation."""

    model_config = ConfigDict(populate_by_name=True)

    content: Optional[str] = Field(default=None, description="Creative prompt from the user")
    instrumental: bool = Field(default=False, description="Generate without vocals")
    from_thinking: bool = Field(
        default=False,
        alias="fromThinking",
        description="Content comes from the persona's autonomous thinking",
    )


class CreateTrackResponse(BaseModel):
    """Response model for track creation (music_task_id is null on partial success)."""

    message: dict[str, Any]
    music_task_id: Optional[str] = None
    music_parameters: dict[str, Any]


class TrackDTO(BaseModel):
    """Data Transfer Object for track information in API responses."""

    id: UUID
    foundry_id: str
    name: str
    prompt: Optional[str] = None
    lyrics: Optional[str] = None
    style: Optional[str] = None
    audio_url: Optional[str] = Field(
        default=None, description="Local copy when downloaded, external URL otherwise"
    )
    cover_url: Optional[str] = None
    source_job_id: Optional[str] = None
    pending: bool = Field(..., description="True while the job has not produced audio yet")
    created_at: datetime
    reactions: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_track(cls, track: Track) -> "TrackDTO":
        return cls(
            id=track.id,
            foundry_id=track.foundry_id,
            name=track.name,
            prompt=track.prompt,
            lyrics=track.lyrics,
            style=track.style,
            audio_url=track.playback_url,
            cover_url=track.cover_path,
            source_job_id=track.source_job_id,
            pending=track.is_provisional,
            created_at=track.created_at,
            reactions=track.reactions or {},
        )


class SaveTracksResponse(BaseModel):
    success: bool = True
    saved_tracks: int = 0


class SaveFromStatusRequest(BaseModel):
    """Tracks reported by a status query the client ran itself."""

    model_config = ConfigDict(populate_by_name=True)

    task_id: Optional[str] = Field(default=None, alias="taskId")
    tracks: Optional[list[dict[str, Any]]] = None


class ReactionRequest(BaseModel):
    reaction: Optional[str] = Field(default=None, description="Reaction symbol")


class ReactionsResponse(BaseModel):
    track_id: UUID
    reactions: dict[str, int]


# Endpoints


@router.get("", response_model=list[TrackDTO])
async def list_tracks(
    foundry_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    uow_factory=Depends(get_uow_factory),
) -> list[TrackDTO]:
    """List a foundry's tracks, newest first."""
    async with await uow_factory() as uow:
        tracks = await uow.tracks.list_by_foundry(foundry_id, limit=limit, offset=offset)
    return [TrackDTO.from_track(track) for track in tracks]


@router.post("", response_model=CreateTrackResponse)
async def create_track(
    foundry_id: str,
    request: CreateTrackRequest,
    orchestrator: TrackCreationOrchestrator = Depends(get_orchestrator),
) -> CreateTrackResponse:
    """Have the foundry design a track and submit it for synthesis.

    Polling of the resulting job starts server-side.

    HTTP Status Codes:
        200: Track designed; music_task_id is null if synthesis submission failed
        400: Missing content
        502: Agent service failed or replied with unusable parameters
    """
    if not request.content or not request.content.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Message content is required"
        )

    try:
        result = await orchestrator.create_track(
            foundry_id,
            request.content,
            instrumental=request.instrumental,
            from_thinking=request.from_thinking,
        )
    except AgentResponseParseError as e:
        logger.error("track.create.parse_failed", foundry_id=foundry_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to parse music parameters from AI response",
        )
    except ServiceError as e:
        logger.error(
            "track.create.agent_failed",
            foundry_id=foundry_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Conversational agent request failed: {e}",
        )

    return CreateTrackResponse(
        message=result.message,
        music_task_id=result.job_id,
        music_parameters=result.music_parameters(),
    )


@router.get("/status")
async def get_job_status(
    foundry_id: str,
    job_id: Optional[str] = Query(default=None, alias="jobId"),
    task_id: Optional[str] = Query(default=None, alias="taskId"),
    suno: SunoClient = Depends(get_suno_client),
    tracker: JobTracker = Depends(get_job_tracker),
) -> dict[str, Any]:
    """Return the synthesis service's status envelope for a job.

    The in-process GenerationJob snapshot is added under ``tracked`` (null when the
    job is not polled by this process).
    """
    job_id = job_id or task_id
    if not job_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Job ID is required")

    try:
        envelope = await suno.get_record_info(job_id)
    except (TransientError, PermanentError) as e:
        logger.error("track.status.failed", foundry_id=foundry_id, job_id=job_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to check music generation status: {e}",
        )

    tracked = tracker.get(job_id)
    return {**envelope, "tracked": tracked.snapshot() if tracked else None}


@router.post("/callback", response_model=SaveTracksResponse)
async def receive_callback(
    foundry_id: str,
    request: Request,
    completion: JobCompletionHandler = Depends(get_completion_handler),
    tracker: JobTracker = Depends(get_job_tracker),
) -> SaveTracksResponse:
    """Receive the synthesis service's completion callback.

    HTTP Status Codes:
        200: Callback acknowledged (assets persisted when code is 200)
        400: Body is not a JSON object
    """
    try:
        body = json.loads(await request.body())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Callback body must be an object"
        )

    code = body.get("code")
    if code != 200:
        logger.warning(
            "track.callback.rejected", foundry_id=foundry_id, code=code, msg=body.get("msg")
        )
        return SaveTracksResponse()

    job_id, assets = extract_callback_assets(body)
    logger.info(
        "track.callback.received", foundry_id=foundry_id, job_id=job_id, assets=len(assets)
    )

    if job_id:
        tracker.cancel(job_id)

    tracks = await completion.complete(foundry_id, job_id, assets)
    return SaveTracksResponse(saved_tracks=len(tracks))


@router.post("/save-from-status", response_model=SaveTracksResponse)
async def save_from_status(
    foundry_id: str,
    request: SaveFromStatusRequest,
    completion: JobCompletionHandler = Depends(get_completion_handler),
) -> SaveTracksResponse:
    """Persist tracks a client obtained from its own status polling."""
    if not request.task_id or not request.tracks:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Task ID and tracks are required"
        )

    assets = parse_assets(request.tracks, request.task_id)
    tracks = await completion.complete(foundry_id, request.task_id, assets)
    return SaveTracksResponse(saved_tracks=len(tracks))


async def _get_foundry_track(uow, foundry_id: str, track_id: UUID) -> Track:
    track = await uow.tracks.get_by_id(track_id)
    if track is None or track.foundry_id != foundry_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Track not found")
    return track


@router.get("/{track_id}/reactions", response_model=ReactionsResponse)
async def get_reactions(
    foundry_id: str,
    track_id: UUID,
    uow_factory=Depends(get_uow_factory),
) -> ReactionsResponse:
    async with await uow_factory() as uow:
        track = await _get_foundry_track(uow, foundry_id, track_id)
    return ReactionsResponse(track_id=track.id, reactions=track.reactions or {})


@router.post("/{track_id}/reactions", response_model=ReactionsResponse)
async def add_reaction(
    foundry_id: str,
    track_id: UUID,
    request: ReactionRequest,
    uow_factory=Depends(get_uow_factory),
) -> ReactionsResponse:
    """Increment one reaction counter on a track.

    HTTP Status Codes:
        200: Reaction recorded
        400: Missing or unsupported reaction symbol
        404: Track not found for this foundry
    """
    if not request.reaction:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reaction is required")
    if request.reaction not in SUPPORTED_REACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported reaction: {request.reaction}",
        )

    async with await uow_factory() as uow:
        track = await _get_foundry_track(uow, foundry_id, track_id)
        reactions = await uow.tracks.add_reaction(track, request.reaction)

    logger.info("track.reaction.added", track_id=str(track_id), reaction=request.reaction)
    return ReactionsResponse(track_id=track_id, reactions=reactions)
