"""Track repository for the BeatFoundry backend.

Provides data access methods for Track entities. The store is the single source
of truth for provisional records and for "was this audio asset already saved".
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beatfoundry.models.track import Track


class TrackRepository:
    """Repository for Track entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, track: Track) -> Track:
        """Persist new track to database.

        Args:
            track: Track entity to persist

        Returns:
            Persisted track with generated ID
        """
        self.session.add(track)
        await self.session.flush()
        return track

    async def get_by_id(self, track_id: UUID) -> Track | None:
        """Retrieve track by UUID.

        Args:
            track_id: Track's unique identifier

        Returns:
            Track if found, None otherwise
        """
        result = await self.session.execute(select(Track).where(Track.id == track_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_by_source_job_id(self, job_id: str) -> Track | None:
        """Retrieve the oldest track recorded for a synthesis job.

        The first asset of a job either updates the provisional record created at
        submission time or becomes the record that keeps the job id.

        Args:
            job_id: Synthesis job identifier

        Returns:
            Track if found, None otherwise
        """
        result = await self.session.execute(
            select(Track)
            .where(Track.source_job_id == job_id)  # type: ignore[arg-type]
            .order_by(Track.created_at.asc())  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_audio_url(self, foundry_id: str, audio_url: str) -> Track | None:
        """Retrieve a foundry's track for an external audio URL.

        Args:
            foundry_id: Owning foundry
            audio_url: External asset URL returned by the synthesis service

        Returns:
            Track if found, None otherwise
        """
        result = await self.session.execute(
            select(Track)
            .where(Track.foundry_id == foundry_id)  # type: ignore[arg-type]
            .where(Track.audio_url == audio_url)  # type: ignore[arg-type]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_foundry(
        self, foundry_id: str, limit: int = 100, offset: int = 0
    ) -> list[Track]:
        """Retrieve a foundry's tracks with pagination.

        Args:
            foundry_id: Owning foundry
            limit: Maximum number of tracks to return (default: 100)
            offset: Number of tracks to skip (default: 0)

        Returns:
            List of tracks ordered by created_at timestamp (newest first)
        """
        result = await self.session.execute(
            select(Track)
            .where(Track.foundry_id == foundry_id)  # type: ignore[arg-type]
            .order_by(Track.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get_pending_provisional(self, limit: int = 100) -> list[Track]:
        """Retrieve provisional tracks still waiting for their job's audio.

        Query explanation:
        - WHERE source_job_id IS NOT NULL: Created at submission time
        - AND audio_url IS NULL: No asset reconciled yet
        - ORDER BY created_at ASC: Oldest jobs first

        Args:
            limit: Maximum number of tracks to return (default: 100)

        Returns:
            List of provisional tracks
        """
        result = await self.session.execute(
            select(Track)
            .where(Track.source_job_id.is_not(None))  # type: ignore[union-attr]
            .where(Track.audio_url.is_(None))  # type: ignore[union-attr]
            .order_by(Track.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def update_audio_url(self, track: Track, audio_url: str) -> None:
        """Attach the external audio URL produced for a track.

        Args:
            track: Track entity to update
            audio_url: External asset URL

        Raises:
            ValueError: If audio_url is empty
        """
        if not audio_url:
            raise ValueError("audio_url cannot be empty")

        track.audio_url = audio_url
        self.session.add(track)
        await self.session.flush()
        await self.session.refresh(track)

    async def adopt_provisional(self, stored: Track, provisional: Track) -> Track:
        """Fold a provisional record into a track already stored for its first asset.

        Happens when a completion without a job id saved the asset before the
        job's own completion arrived. The stored track takes over the job id and
        the agent-designed text; the empty provisional record is deleted.

        Args:
            stored: Track already holding the asset's audio URL
            provisional: Provisional record of the same job (no audio URL)

        Returns:
            The stored track
        """
        stored.source_job_id = provisional.source_job_id
        stored.prompt = provisional.prompt or stored.prompt
        stored.lyrics = provisional.lyrics or stored.lyrics
        stored.style = provisional.style or stored.style
        self.session.add(stored)
        await self.session.delete(provisional)
        await self.session.flush()
        return stored

    async def update_audio_path(self, track_id: UUID, audio_path: str) -> Track | None:
        """Record the public path of the downloaded audio file.

        Args:
            track_id: Track's unique identifier
            audio_path: Public path (e.g. /media/songs/nova_1700000000000.mp3)

        Returns:
            Updated track, None if the track no longer exists
        """
        track = await self.get_by_id(track_id)
        if track is None:
            return None
        track.audio_path = audio_path
        self.session.add(track)
        await self.session.flush()
        return track

    async def update_cover_path(self, track_id: UUID, cover_path: str) -> Track | None:
        """Record the public path of the stored cover image.

        Args:
            track_id: Track's unique identifier
            cover_path: Public path (e.g. /media/images/covers/nova_1700000000000.jpg)

        Returns:
            Updated track, None if the track no longer exists
        """
        track = await self.get_by_id(track_id)
        if track is None:
            return None
        track.cover_path = cover_path
        self.session.add(track)
        await self.session.flush()
        return track

    async def add_reaction(self, track: Track, reaction: str) -> dict:
        """Increment a reaction counter on a track.

        Args:
            track: Track entity to update
            reaction: Reaction symbol (see SUPPORTED_REACTIONS)

        Returns:
            Updated reactions mapping

        Raises:
            ValueError: If the reaction symbol is not supported
        """
        reactions = track.add_reaction(reaction)
        self.session.add(track)
        await self.session.flush()
        return reactions
