"""Asset pipeline: local audio copies and cover art for reconciled tracks.

Both steps are best effort and fail independently. A failed download leaves the
track playable from its external ``audio_url``; a failed cover leaves
``cover_path`` unset. Re-running either step writes a new timestamped file.
"""

import asyncio
import re
import time
from pathlib import Path
from typing import Optional

import httpx
import structlog

from beatfoundry.models.track import Track
from beatfoundry.services.exceptions import AssetDownloadError, ServiceError
from beatfoundry.services.image_generation.cover import CoverImageGenerator, build_cover_prompt
from beatfoundry.uow import UnitOfWorkFactory

logger = structlog.get_logger(__name__)

SONGS_DIR = "songs"
COVERS_DIR = "images/covers"


def sanitize_title(title: Optional[str]) -> str:
    """Filesystem-safe lowercase stem derived from a track title."""
    safe = re.sub(r"[^a-z0-9]", "_", (title or "").lower())
    return safe or "track"


def timestamped_filename(title: Optional[str], extension: str) -> str:
    return f"{sanitize_title(title)}_{int(time.time() * 1000)}.{extension}"


class AssetPipeline:
    """Downloads audio and generates covers for tracks after reconciliation."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        cover_generator: CoverImageGenerator,
        media_root: str,
        media_url_prefix: str = "/media",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the pipeline.

        Args:
            uow_factory: Unit of Work factory for path updates
            cover_generator: Image provider returning a downloadable URL
            media_root: Directory that receives stored files
            media_url_prefix: Public URL prefix the media directory is served under
            timeout: Download timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.uow_factory = uow_factory
        self.cover_generator = cover_generator
        self.media_root = Path(media_root)
        self.media_url_prefix = media_url_prefix.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def materialize(self, track: Track) -> Track:
        """Store audio locally, then attach a cover image.

        Never raises for download or cover failures; they are logged.

        Returns:
            The track with whichever paths were set
        """
        await self.store_audio(track)
        await self.store_cover(track)
        return track

    async def store_audio(self, track: Track) -> Optional[str]:
        """Download ``audio_url`` into the songs directory and record its public path."""
        if not track.audio_url:
            logger.warning("assets.audio_skipped", track_id=str(track.id), reason="no_audio_url")
            return None

        filename = timestamped_filename(track.name, "mp3")
        try:
            public_path = await self._download(track.audio_url, SONGS_DIR, filename)
            async with await self.uow_factory() as uow:
                await uow.tracks.update_audio_path(track.id, public_path)
        except Exception as e:
            logger.error(
                "assets.audio_failed",
                track_id=str(track.id),
                audio_url=track.audio_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        track.audio_path = public_path
        logger.info("assets.audio_stored", track_id=str(track.id), audio_path=public_path)
        return public_path

    async def store_cover(self, track: Track) -> Optional[str]:
        """Generate a cover, download it into the covers directory and record its path."""
        prompt = build_cover_prompt(track.name, track.prompt, track.style)
        try:
            image_url = await self.cover_generator.generate(track.foundry_id, prompt)
            filename = timestamped_filename(track.name, "jpg")
            public_path = await self._download(image_url, COVERS_DIR, filename)
            async with await self.uow_factory() as uow:
                await uow.tracks.update_cover_path(track.id, public_path)
        except ServiceError as e:
            logger.warning(
                "assets.cover_failed",
                track_id=str(track.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        except Exception as e:
            logger.error(
                "assets.cover_failed",
                track_id=str(track.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        track.cover_path = public_path
        logger.info("assets.cover_stored", track_id=str(track.id), cover_path=public_path)
        return public_path

    async def _download(self, url: str, subdir: str, filename: str) -> str:
        """Fetch ``url`` into ``media_root/subdir/filename``.

        Returns:
            Public path of the stored file

        Raises:
            AssetDownloadError: Network failure or non-2xx response
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport, follow_redirects=True
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AssetDownloadError(
                f"Download of {url} failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise AssetDownloadError(f"Download of {url} failed: {e}") from e

        target_dir = self.media_root / subdir
        target = target_dir / filename
        # Filesystem writes run off the event loop
        await asyncio.to_thread(target_dir.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, response.content)

        return f"{self.media_url_prefix}/{subdir}/{filename}"
