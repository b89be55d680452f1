"""Track entity - user-visible generated song owned by a foundry."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from beatfoundry.core.timezone import utcnow

# Reaction symbols listeners can attach to a track
SUPPORTED_REACTIONS = frozenset(
    {
        "⭐",  # Quality rating
        "🎵",  # Melody focus
        "🥁",  # Rhythm focus
        "🔊",  # Production quality
        "📝",  # Needs work/revision
        "❓",  # Confusion/question
        "💡",  # Innovative idea
        "🔁",  # Repetitive
        "🌟",  # Standout track
        "📈",  # Showing improvement/growth
        "❌",  # Bad track/has errors
    }
)


class Track(SQLModel, table=True):
    """Track is a persisted song record produced by a generation job.

    A track created at submission time carries ``source_job_id`` but no
    ``audio_url`` yet (a provisional record). Reconciliation fills in
    ``audio_url``; the asset pipeline later sets ``audio_path`` and
    ``cover_path`` once the files are stored locally.
    """

    __tablename__ = "tracks"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    foundry_id: str = Field(max_length=64, index=True)
    name: str = Field(max_length=255)
    prompt: Optional[str] = Field(default=None)
    lyrics: Optional[str] = Field(default=None)
    style: Optional[str] = Field(default=None, max_length=255)

    # External asset URL from the synthesis service (dedup key across passes)
    audio_url: Optional[str] = Field(default=None, max_length=2048, index=True)
    # Public paths of locally stored files
    audio_path: Optional[str] = Field(default=None, max_length=1024)
    cover_path: Optional[str] = Field(default=None, max_length=1024)

    # Only the first asset of a job keeps the job id
    source_job_id: Optional[str] = Field(default=None, max_length=255, index=True)
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    reactions: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    @property
    def is_provisional(self) -> bool:
        """True while the track waits for its job's first asset."""
        return self.source_job_id is not None and self.audio_url is None

    @property
    def playback_url(self) -> Optional[str]:
        """Local copy when downloaded, external URL as fallback."""
        return self.audio_path or self.audio_url

    def add_reaction(self, reaction: str) -> dict:
        """Increment one reaction counter.

        A new dict is assigned so the JSON column is flagged as modified.

        Raises:
            ValueError: If the reaction symbol is not supported
        """
        if reaction not in SUPPORTED_REACTIONS:
            raise ValueError(f"Unsupported reaction: {reaction}")
        updated = dict(self.reactions or {})
        updated[reaction] = updated.get(reaction, 0) + 1
        self.reactions = updated
        return updated
