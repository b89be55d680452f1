"""Unit of Work pattern tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback and propagate
- Several writes in one context are atomic
"""

import pytest

from beatfoundry.models.track import Track


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory):
    """Changes made within the context persist after the context exits."""
    async with await uow_factory() as uow:
        track = Track(foundry_id="nova", name="Nova", source_job_id="J1")
        await uow.tracks.add(track)
        track_id = track.id

    async with await uow_factory() as uow:
        found = await uow.tracks.get_by_id(track_id)
        assert found is not None
        assert found.source_job_id == "J1"


@pytest.mark.asyncio
async def test_uow_rollback_on_exception(uow_factory):
    """An exception inside the context rolls back and is not swallowed."""
    with pytest.raises(ValueError, match="Simulated error"):
        async with await uow_factory() as uow:
            await uow.tracks.add(
                Track(foundry_id="nova", name="Nova", audio_url="https://cdn.test/a1.mp3")
            )
            raise ValueError("Simulated error")

    async with await uow_factory() as uow:
        assert await uow.tracks.get_by_audio_url("nova", "https://cdn.test/a1.mp3") is None


@pytest.mark.asyncio
async def test_uow_multiple_writes_are_atomic(uow_factory):
    """A provisional update and a sibling insert commit or roll back together."""
    async with await uow_factory() as uow:
        provisional = Track(foundry_id="nova", name="Nova", source_job_id="J1")
        await uow.tracks.add(provisional)

    with pytest.raises(RuntimeError):
        async with await uow_factory() as uow:
            track = await uow.tracks.get_by_id(provisional.id)
            await uow.tracks.update_audio_url(track, "https://cdn.test/a1.mp3")
            await uow.tracks.add(
                Track(foundry_id="nova", name="Nova (Version 2)", audio_url="https://cdn.test/a2")
            )
            raise RuntimeError("interrupted")

    async with await uow_factory() as uow:
        tracks = await uow.tracks.list_by_foundry("nova")
        assert len(tracks) == 1
        assert tracks[0].is_provisional
