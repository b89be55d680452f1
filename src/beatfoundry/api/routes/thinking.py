"""Autonomous-thinking endpoints for a foundry.

- POST /api/foundries/{foundry_id}/thinking - Trigger a thinking run
- POST /api/foundries/{foundry_id}/thinking/webhook - Step updates from the agent service
- GET  /api/foundries/{foundry_id}/thinking/events - Live stream of steps (SSE)
"""

import json
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from beatfoundry.api.dependencies import (
    get_event_channel,
    get_kinos_client,
    get_live_stream,
    get_orchestrator,
    get_settings,
)
from beatfoundry.core.config import Settings
from beatfoundry.models.thinking_event import ThinkingEvent
from beatfoundry.services.events import EventChannel
from beatfoundry.services.exceptions import ServiceError
from beatfoundry.services.kinos.client import KinosClient
from beatfoundry.services.live_stream import SSE_HEADERS, LiveStreamGateway
from beatfoundry.services.orchestrator import TrackCreationOrchestrator

logger = structlog.get_logger()
router = APIRouter(prefix="/api/foundries/{foundry_id}/thinking", tags=["thinking"])

INITIATIVE_STEP = "initiative"


class TriggerThinkingRequest(BaseModel):
    iterations: int = Field(default=1, ge=1, le=10)


def initiative_text(content: Any) -> str:
    """Text handed to track creation for an initiative step."""
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False)


async def create_track_from_initiative(
    orchestrator: TrackCreationOrchestrator, foundry_id: str, content: Any
) -> None:
    """Background task: turn an initiative step into a track."""
    try:
        result = await orchestrator.create_track(
            foundry_id, initiative_text(content), from_thinking=True
        )
    except ServiceError as e:
        logger.error(
            "thinking.initiative.track_failed",
            foundry_id=foundry_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return
    except Exception as e:
        logger.error(
            "thinking.initiative.track_failed",
            foundry_id=foundry_id,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return
    logger.info("thinking.initiative.track_submitted", foundry_id=foundry_id, job_id=result.job_id)


@router.post("")
async def trigger_thinking(
    foundry_id: str,
    request: TriggerThinkingRequest,
    kinos: KinosClient = Depends(get_kinos_client),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Start an autonomous-thinking run whose steps come back through the webhook."""
    try:
        result = await kinos.trigger_autonomous_thinking(
            foundry_id,
            iterations=request.iterations,
            webhook_url=settings.thinking_webhook_url(foundry_id),
        )
    except ServiceError as e:
        logger.error("thinking.trigger_failed", foundry_id=foundry_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to trigger autonomous thinking: {e}",
        )
    return {"success": True, "result": result}


@router.post("/webhook")
async def receive_thinking_webhook(
    foundry_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    channel: EventChannel = Depends(get_event_channel),
    settings: Settings = Depends(get_settings),
    orchestrator: TrackCreationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Publish one thinking step to the foundry's live subscribers.

    HTTP Status Codes:
        200: Step published
        400: Body is not JSON or has no step
    """
    try:
        body = json.loads(await request.body())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(body, dict) or not body.get("step"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required field: step"
        )

    try:
        event = ThinkingEvent(
            foundry_id=foundry_id, step=str(body["step"]), content=body.get("content")
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    delivered = channel.publish(foundry_id, event.to_wire())
    logger.info(
        "thinking.webhook.received",
        foundry_id=foundry_id,
        step=event.step,
        subscribers=delivered,
    )

    if event.step == INITIATIVE_STEP and settings.initiative_creates_track:
        background_tasks.add_task(
            create_track_from_initiative, orchestrator, foundry_id, event.content
        )

    return {"success": True}


@router.get("/events")
async def stream_thinking_events(
    foundry_id: str,
    gateway: LiveStreamGateway = Depends(get_live_stream),
) -> StreamingResponse:
    """Long-lived SSE stream: a connection frame, then every published step."""
    return StreamingResponse(
        gateway.stream(foundry_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
