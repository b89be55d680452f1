"""ProducedAsset - one raw audio result returned by the synthesis service."""

from dataclasses import dataclass
from typing import Any, Optional

# The status envelope uses camelCase, the completion callback uses snake_case
AUDIO_URL_KEYS = ("audioUrl", "audio_url", "sourceAudioUrl", "source_audio_url", "url")


@dataclass(frozen=True)
class ProducedAsset:
    """Raw asset descriptor, not yet reconciled into a track.

    Attributes:
        audio_url: External audio URL (dedup key)
        title: Title reported by the synthesis service
        prompt: Free-text prompt field as reported (may actually hold lyrics)
        lyrics: Lyrics field when the service reports one separately
        tags: Style tags reported by the service
        duration: Duration in seconds when known
        source_job_id: Job that produced the asset
    """

    audio_url: str
    title: Optional[str] = None
    prompt: Optional[str] = None
    lyrics: Optional[str] = None
    tags: Optional[str] = None
    duration: Optional[float] = None
    source_job_id: Optional[str] = None

    @classmethod
    def from_payload(cls, item: dict[str, Any], source_job_id: Optional[str]) -> "ProducedAsset":
        """Build an asset from a status-envelope or callback item.

        Raises:
            ValueError: If the item carries no audio URL
        """
        audio_url = next((item[key] for key in AUDIO_URL_KEYS if item.get(key)), None)
        if not audio_url:
            raise ValueError("Asset item has no audio URL")

        duration = item.get("duration")
        try:
            duration = float(duration) if duration is not None else None
        except (TypeError, ValueError):
            duration = None

        return cls(
            audio_url=str(audio_url),
            title=item.get("title") or None,
            prompt=item.get("prompt") or None,
            lyrics=item.get("lyrics") or None,
            tags=item.get("tags") or None,
            duration=duration,
            source_job_id=source_job_id,
        )
