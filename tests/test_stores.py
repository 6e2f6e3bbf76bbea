# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""RemoteStore clients against a real (SQLite) database, directly and over HTTP."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from groupie_server.api.schemas import SongPayload
from groupie_server.main import app
from groupie_server.sync.engine import SessionEngine
from groupie_server.sync.notifications import Notifier
from groupie_server.sync.store import DatabaseStore, HttpStore, NotFoundError, StoreError
from groupie_server.sync.types import Identity, PlaybackState
from tests.conftest import make_songs

pytestmark = pytest.mark.anyio


@pytest.fixture
async def http_store(client):
    api = AsyncClient(transport=ASGITransport(app=app), base_url="http://test/api/v1")
    store = HttpStore(client=api)
    yield store
    await store.aclose()


@pytest.fixture
def db_store(session_maker) -> DatabaseStore:
    return DatabaseStore(session_maker)


@pytest.fixture(params=["db", "http"])
def remote(request, db_store, http_store):
    return db_store if request.param == "db" else http_store


async def test_store_session_lifecycle(remote):
    user = await remote.get_or_create_user("host@example.com", "Host")
    playlist = await remote.create_playlist("Road Trip", None, user.id)
    assert [p.id for p in await remote.list_playlists(user.id)] == [playlist.id]

    await remote.replace_songs(playlist.id, [s.to_payload() for s in make_songs(2)])
    assert [s.song_id for s in await remote.list_songs(playlist.id)] == ["song-1", "song-2"]

    session = await remote.create_session(playlist.id, "abcde", {"queuesPerHour": "3"})
    assert session.code == "ABCDE"
    found = await remote.fetch_session_by_code("AbCdE")
    assert found.id == session.id
    assert found.playlist_name == "Road Trip"
    assert await remote.fetch_session_by_code("ZZZZZ") is None

    await remote.update_settings(session.id, {"queuesPerHour": "1"})
    assert await remote.fetch_settings(session.id) == {"queuesPerHour": "1"}

    host = await remote.add_participant(session.id, "You", "host")
    kim = await remote.add_participant(session.id, "Kim", "guest")
    await remote.remove_participant(session.id, kim.id)
    assert [p.id for p in await remote.list_participants(session.id)] == [host.id]

    for song in make_songs(3):
        await remote.add_to_queue(session.id, song.to_payload(), "You", "host")
    await remote.remove_from_queue(session.id, "song-2")
    rows = await remote.list_queue(session.id)
    assert [(r.song_id, r.position) for r in rows] == [("song-1", 0), ("song-3", 2)]

    await remote.clear_queue(session.id)
    assert await remote.list_queue(session.id) == []


async def test_http_store_maps_missing_rows(http_store):
    assert await http_store.fetch_settings("missing") is None
    with pytest.raises(NotFoundError):
        await http_store.add_participant("missing", "Kim", "guest")


async def test_http_store_wraps_transport_errors():
    store = HttpStore(client=AsyncClient(base_url="http://127.0.0.1:9/api/v1", timeout=0.5))
    with pytest.raises(StoreError):
        await store.list_queue("s")
    await store.aclose()


async def test_database_store_wraps_sqlalchemy_errors(db_store, monkeypatch):
    from groupie_server.services import sessions as session_service

    async def broken(db, session_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(session_service, "list_queue", broken)
    with pytest.raises(StoreError):
        await db_store.list_queue("s")


async def test_create_session_for_missing_playlist(db_store):
    with pytest.raises(NotFoundError):
        await db_store.create_session("missing", "ABCDE", None)


async def test_shared_session_end_to_end(remote):
    """Host and guest clients converge through the store by polling."""
    host = SessionEngine(remote, Notifier(), autorun=False, tick_seconds=0.1, song_duration=1, demo_mode=False)
    await host.login("host@example.com", "Host")
    playlist = await host.create_playlist("Road Trip")
    await host.update_settings({"unlimitedQueuing": False, "queuesPerHour": "3"})
    session = await host.start_session("ABCDE")

    guest = SessionEngine(
        remote, Notifier(), identity=Identity.guest(), autorun=False,
        tick_seconds=0.1, song_duration=1, demo_mode=False,
    )
    joined = await guest.join_session("abcde", "Kim")
    admitted = await guest.add_to_queue(make_songs(5))
    assert len(admitted) == 3
    assert joined.credits_remaining == 0

    assert await host.reconciler.tick()
    assert [s.id for s in playlist.queue] == ["song-1", "song-2", "song-3"]
    assert 'Queued "Title 1" by Artist 1 (by You)' in host.notifier.messages()
    assert "Kim joined the session" in host.notifier.messages()

    # Host starts playing the shared queue and finishes the first song
    host.play()
    assert host.state.playback is PlaybackState.PLAYING
    for _ in range(10):
        host.timer.tick()
    await host.drain()
    assert [r.song_id for r in await remote.list_queue(session.id)] == ["song-2", "song-3"]

    assert await guest.reconciler.tick()
    assert [s.id for s in joined.queue] == ["song-2", "song-3"]

    await host.stop_session()
    assert await remote.list_queue(session.id) == []
    assert {p.name for p in await remote.list_participants(session.id)} == {"You", "Kim"}


async def test_store_handles_reserved_characters_in_paths(remote):
    user = await remote.get_or_create_user("host@example.com", "Host")
    playlist = await remote.create_playlist("Road Trip", None, user.id)
    session = await remote.create_session(playlist.id, "AB?CD", None)

    found = await remote.fetch_session_by_code("ab?cd")
    assert found is not None and found.id == session.id

    for song_id in ["AC/DC-1", "plain-2"]:
        payload = SongPayload(id=song_id, title="Thunderstruck", artist="AC/DC")
        await remote.add_to_queue(session.id, payload, "You", "host")
    await remote.remove_from_queue(session.id, "AC/DC-1")
    assert [r.song_id for r in await remote.list_queue(session.id)] == ["plain-2"]


async def test_replace_songs_payload_shape(http_store):
    user = await http_store.get_or_create_user("host@example.com", "Host")
    playlist = await http_store.create_playlist("P", "cover.png", user.id)
    assert playlist.album_art == "cover.png"
    await http_store.replace_songs(playlist.id, [SongPayload(id="x", title="X", artist="Y", album=None)])
    songs = await http_store.list_songs(playlist.id)
    assert songs[0].album is None
