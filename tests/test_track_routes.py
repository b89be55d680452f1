"""Track endpoint tests."""

import asyncio
from uuid import uuid4

import httpx
import pytest
from conftest import KINOS_KIN, SUNO_BASE, status_envelope

from beatfoundry.models.track import Track
from beatfoundry.services.orchestrator import TrackCreationResult

BASE = "/api/foundries/nova/tracks"
RECORD_INFO_PATH = f"{SUNO_BASE}/generate/record-info"


def callback_body(*urls: str, task_id: str = "J1", code: int = 200) -> dict:
    return {
        "code": code,
        "msg": "All generated successfully.",
        "data": {
            "callbackType": "complete",
            "task_id": task_id,
            "data": [
                {"id": f"s{i}", "audio_url": url, "title": "Nova", "tags": "synthwave"}
                for i, url in enumerate(urls)
            ],
        },
    }


@pytest.fixture
def media(upstream):
    """Downloadable audio and cover assets."""
    upstream.on("GET", "/a1.mp3", httpx.Response(200, content=b"ID3-a1"))
    upstream.on("GET", "/a2.mp3", httpx.Response(200, content=b"ID3-a2"))
    upstream.json("POST", f"{KINOS_KIN}/nova/images", {"data": {"url": "https://cdn.test/c.jpg"}})
    upstream.on("GET", "/c.jpg", httpx.Response(200, content=b"\xff\xd8jpeg"))


async def add_track(uow_factory, **fields) -> Track:
    track = Track(**{"foundry_id": "nova", "name": "Nova", **fields})
    async with await uow_factory() as uow:
        await uow.tracks.add(track)
    return track


class StubOrchestrator:
    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[tuple] = []

    async def create_track(self, foundry_id, user_prompt, instrumental=False, from_thinking=False):
        self.calls.append((foundry_id, user_prompt, instrumental, from_thinking))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.mark.asyncio
async def test_list_tracks_newest_first(client, uow_factory):
    await add_track(uow_factory, name="Old", audio_url="https://cdn.test/old.mp3")
    await add_track(uow_factory, name="Pending", source_job_id="J9")
    await add_track(uow_factory, foundry_id="orion", name="Elsewhere")

    response = await client.get(BASE)

    assert response.status_code == 200
    tracks = response.json()
    assert [t["name"] for t in tracks] == ["Pending", "Old"]
    assert tracks[0]["pending"] is True
    assert tracks[1]["audio_url"] == "https://cdn.test/old.mp3"


@pytest.mark.asyncio
async def test_create_track_requires_content(client):
    response = await client.post(BASE, json={"content": "  "})

    assert response.status_code == 400
    assert response.json()["detail"] == "Message content is required"


@pytest.mark.asyncio
async def test_create_track_returns_job_and_parameters(client, app):
    parameters = {"prompt": "p", "style": "s", "title": "Nova", "lyrics": "l"}
    stub = StubOrchestrator(
        TrackCreationResult(message={"content": "{}"}, parameters=parameters, job_id="J1")
    )
    app.state.orchestrator = stub

    response = await client.post(BASE, json={"content": "rain", "fromThinking": True})

    assert response.status_code == 200
    body = response.json()
    assert body["music_task_id"] == "J1"
    assert body["music_parameters"] == parameters
    assert stub.calls == [("nova", "rain", False, True)]


@pytest.mark.asyncio
async def test_create_track_partial_success(client, app):
    app.state.orchestrator = StubOrchestrator(
        TrackCreationResult(message={}, parameters={"title": "Nova"}, errors=["down"])
    )

    response = await client.post(BASE, json={"content": "rain"})

    assert response.status_code == 200
    assert response.json()["music_task_id"] is None


@pytest.mark.asyncio
async def test_create_track_unparsable_reply(client, upstream):
    upstream.json(
        "POST",
        f"{KINOS_KIN}/nova/channels/tracks/messages",
        {"role": "assistant", "content": "Here is a song!"},
    )

    response = await client.post(BASE, json={"content": "rain"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to parse music parameters from AI response"


@pytest.mark.asyncio
async def test_status_requires_job_id(client):
    response = await client.get(f"{BASE}/status")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_status_returns_envelope(client, upstream):
    upstream.json("GET", RECORD_INFO_PATH, status_envelope("TEXT_SUCCESS"))

    response = await client.get(f"{BASE}/status", params={"taskId": "J1"})

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["response"]["status"] == "TEXT_SUCCESS"
    assert body["tracked"] is None


@pytest.mark.asyncio
async def test_status_includes_tracked_job(client, app, upstream):
    upstream.json("GET", RECORD_INFO_PATH, status_envelope("PENDING"))
    app.state.job_tracker.start_polling("J1", "Nova", "nova")

    response = await client.get(f"{BASE}/status", params={"jobId": "J1"})

    tracked = response.json()["tracked"]
    assert tracked["jobId"] == "J1"
    assert tracked["title"] == "Nova"


@pytest.mark.asyncio
async def test_status_upstream_failure(client, upstream):
    upstream.json("GET", RECORD_INFO_PATH, {"error": "down"}, status_code=503)

    response = await client.get(f"{BASE}/status", params={"jobId": "J1"})

    assert response.status_code == 502


@pytest.mark.asyncio
@pytest.mark.usefixtures("media")
async def test_callback_saves_assets_once(client, uow_factory):
    await add_track(uow_factory, source_job_id="J1")
    body = callback_body("https://cdn.test/a1.mp3", "https://cdn.test/a2.mp3")

    first = await client.post(f"{BASE}/callback", json=body)
    repeat = await client.post(f"{BASE}/callback", json=body)

    assert first.json() == {"success": True, "saved_tracks": 2}
    assert repeat.json() == {"success": True, "saved_tracks": 0}

    async with await uow_factory() as uow:
        tracks = await uow.tracks.list_by_foundry("nova")
    assert sorted(t.name for t in tracks) == ["Nova", "Nova (Version 2)"]
    assert all(t.audio_path and t.cover_path for t in tracks)


@pytest.mark.asyncio
@pytest.mark.usefixtures("media")
async def test_callback_stops_polling_the_job(client, app, upstream):
    upstream.json("GET", RECORD_INFO_PATH, status_envelope("PENDING"))
    tracker = app.state.job_tracker
    tracker.start_polling("J1", "Nova", "nova")
    await asyncio.sleep(0.03)

    body = callback_body("https://cdn.test/a1.mp3")
    response = await client.post(f"{BASE}/callback", json=body)

    assert response.json()["saved_tracks"] == 1
    assert tracker.get("J1") is None


@pytest.mark.asyncio
async def test_callback_with_error_code_is_acknowledged(client, uow_factory):
    response = await client.post(
        f"{BASE}/callback", json={"code": 501, "msg": "Audio generation failed", "data": None}
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "saved_tracks": 0}
    async with await uow_factory() as uow:
        assert await uow.tracks.list_by_foundry("nova") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("data", ["oops", 42, True, {"task_id": "J1", "data": "oops"}])
async def test_callback_with_malformed_data_is_acknowledged(client, uow_factory, data):
    response = await client.post(f"{BASE}/callback", json={"code": 200, "data": data})

    assert response.status_code == 200
    assert response.json() == {"success": True, "saved_tracks": 0}
    async with await uow_factory() as uow:
        assert await uow.tracks.list_by_foundry("nova") == []


@pytest.mark.asyncio
async def test_callback_rejects_invalid_json(client):
    response = await client.post(
        f"{BASE}/callback", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.usefixtures("media")
async def test_save_from_status(client, uow_factory):
    reported = [{"audioUrl": "https://cdn.test/a1.mp3", "title": "Nova"}]

    response = await client.post(
        f"{BASE}/save-from-status", json={"taskId": "J1", "tracks": reported}
    )

    assert response.json() == {"success": True, "saved_tracks": 1}
    async with await uow_factory() as uow:
        (track,) = await uow.tracks.list_by_foundry("nova")
    assert track.source_job_id == "J1"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"taskId": "J1"}, {"tracks": [{"audioUrl": "x"}]}, {}])
async def test_save_from_status_requires_fields(client, body):
    response = await client.post(f"{BASE}/save-from-status", json=body)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reactions(client, uow_factory):
    track = await add_track(uow_factory, audio_url="https://cdn.test/a1.mp3")
    url = f"{BASE}/{track.id}/reactions"

    await client.post(url, json={"reaction": "⭐"})
    response = await client.post(url, json={"reaction": "⭐"})

    assert response.status_code == 200
    assert response.json()["reactions"] == {"⭐": 2}
    assert (await client.get(url)).json()["reactions"] == {"⭐": 2}


@pytest.mark.asyncio
async def test_reaction_validation(client, uow_factory):
    track = await add_track(uow_factory)
    url = f"{BASE}/{track.id}/reactions"

    assert (await client.post(url, json={})).status_code == 400
    assert (await client.post(url, json={"reaction": "👎"})).status_code == 400
    missing = await client.post(f"{BASE}/{uuid4()}/reactions", json={"reaction": "⭐"})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_reaction_on_other_foundry_track(client, uow_factory):
    track = await add_track(uow_factory, foundry_id="orion")

    response = await client.get(f"{BASE}/{track.id}/reactions")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
