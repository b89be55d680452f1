"""TrackRepository tests."""

from datetime import timedelta

import pytest

from beatfoundry.core.timezone import utcnow
from beatfoundry.models.track import Track
from beatfoundry.repositories.track import TrackRepository


def make_track(**fields) -> Track:
    return Track(**{"foundry_id": "nova", "name": "Nova", **fields})


@pytest.mark.asyncio
async def test_add_and_get_by_id(session):
    repo = TrackRepository(session)
    track = await repo.add(make_track(prompt="synthwave"))

    found = await repo.get_by_id(track.id)

    assert found is track
    assert found.reactions == {}
    assert found.is_provisional is False


@pytest.mark.asyncio
async def test_created_at_is_timezone_aware_utc(uow_factory):
    async with await uow_factory() as uow:
        track = await uow.tracks.add(make_track())

    assert track.created_at.utcoffset() == timedelta(0)
    async with await uow_factory() as uow:
        assert await uow.tracks.get_by_id(track.id) is not None


@pytest.mark.asyncio
async def test_get_by_source_job_id_returns_oldest(session):
    repo = TrackRepository(session)
    now = utcnow()
    await repo.add(make_track(name="Later", source_job_id="J1", created_at=now))
    await repo.add(
        make_track(name="First", source_job_id="J1", created_at=now - timedelta(seconds=5))
    )

    found = await repo.get_by_source_job_id("J1")

    assert found.name == "First"
    assert await repo.get_by_source_job_id("J404") is None


@pytest.mark.asyncio
async def test_get_by_audio_url_is_scoped_to_foundry(session):
    repo = TrackRepository(session)
    await repo.add(make_track(audio_url="https://cdn.test/a1.mp3"))

    assert await repo.get_by_audio_url("nova", "https://cdn.test/a1.mp3") is not None
    assert await repo.get_by_audio_url("orion", "https://cdn.test/a1.mp3") is None
    assert await repo.get_by_audio_url("nova", "https://cdn.test/a2.mp3") is None


@pytest.mark.asyncio
async def test_list_by_foundry_paginates_newest_first(session):
    repo = TrackRepository(session)
    now = utcnow()
    for i in range(3):
        await repo.add(make_track(name=f"T{i}", created_at=now + timedelta(seconds=i)))
    await repo.add(make_track(foundry_id="orion", name="Other"))

    assert [t.name for t in await repo.list_by_foundry("nova")] == ["T2", "T1", "T0"]
    assert [t.name for t in await repo.list_by_foundry("nova", limit=1, offset=1)] == ["T1"]


@pytest.mark.asyncio
async def test_get_pending_provisional(session):
    repo = TrackRepository(session)
    now = utcnow()
    await repo.add(make_track(name="Pending B", source_job_id="J2", created_at=now))
    await repo.add(
        make_track(name="Pending A", source_job_id="J1", created_at=now - timedelta(seconds=1))
    )
    await repo.add(make_track(name="Done", source_job_id="J3", audio_url="https://cdn.test/a"))
    await repo.add(make_track(name="Sibling", audio_url="https://cdn.test/b"))

    pending = await repo.get_pending_provisional()

    assert [t.name for t in pending] == ["Pending A", "Pending B"]
    assert all(t.is_provisional for t in pending)


@pytest.mark.asyncio
async def test_update_audio_url(session):
    repo = TrackRepository(session)
    track = await repo.add(make_track(source_job_id="J1"))

    await repo.update_audio_url(track, "https://cdn.test/a1.mp3")

    assert track.audio_url == "https://cdn.test/a1.mp3"
    assert track.is_provisional is False
    with pytest.raises(ValueError):
        await repo.update_audio_url(track, "")


@pytest.mark.asyncio
async def test_update_local_paths(session):
    repo = TrackRepository(session)
    track = await repo.add(make_track(audio_url="https://cdn.test/a1.mp3"))

    await repo.update_audio_path(track.id, "/media/songs/nova_1.mp3")
    await repo.update_cover_path(track.id, "/media/images/covers/nova_1.jpg")

    found = await repo.get_by_id(track.id)
    assert found.playback_url == "/media/songs/nova_1.mp3"
    assert found.cover_path == "/media/images/covers/nova_1.jpg"


@pytest.mark.asyncio
async def test_update_paths_for_missing_track(session):
    repo = TrackRepository(session)

    assert await repo.update_audio_path(make_track().id, "/media/songs/x.mp3") is None
    assert await repo.update_cover_path(make_track().id, "/media/images/covers/x.jpg") is None


@pytest.mark.asyncio
async def test_add_reaction_counts(session):
    repo = TrackRepository(session)
    track = await repo.add(make_track())

    await repo.add_reaction(track, "🎵")
    reactions = await repo.add_reaction(track, "🎵")

    assert reactions == {"🎵": 2}
    with pytest.raises(ValueError, match="Unsupported reaction"):
        await repo.add_reaction(track, "👎")
