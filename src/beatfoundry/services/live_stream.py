"""Server-sent event stream of a foundry's thinking events."""

import asyncio
import json
from typing import Any, AsyncIterator

import structlog

from beatfoundry.core.timezone import iso_timestamp
from beatfoundry.services.events import EventChannel

logger = structlog.get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_frame(payload: dict[str, Any]) -> str:
    """Encode one payload as an SSE ``data:`` frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def connection_event(foundry_id: str) -> dict[str, Any]:
    return {
        "type": "connection",
        "message": "Connected to thinking events",
        "foundryId": foundry_id,
        "timestamp": iso_timestamp(),
    }


class LiveStreamGateway:
    """Turns EventChannel subscriptions into per-client SSE streams.

    Each call to stream() owns one subscription that lives exactly as long as the
    returned generator; closing the generator (client disconnect) unsubscribes.
    """

    def __init__(self, channel: EventChannel, keepalive_seconds: float = 15.0):
        self.channel = channel
        self.keepalive_seconds = keepalive_seconds

    async def stream(self, foundry_id: str) -> AsyncIterator[str]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        unsubscribe = self.channel.subscribe(foundry_id, queue.put_nowait)
        logger.info("stream.opened", foundry_id=foundry_id)

        try:
            yield format_frame(connection_event(foundry_id))
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self.keepalive_seconds)
                except asyncio.TimeoutError:
                    # Comment frame keeps proxies from closing an idle connection
                    yield ": keepalive\n\n"
                    continue
                yield format_frame(event)
        finally:
            unsubscribe()
            logger.info("stream.closed", foundry_id=foundry_id)
