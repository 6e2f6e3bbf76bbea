# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures.

API tests run the app over ASGITransport against an in-memory SQLite database.
Engine tests use ``FakeStore``, an in-memory RemoteStore with failure injection,
and drive the poll loop and playback timer by hand (``autorun=False``).
"""

import itertools
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from groupie_server import rate_limit
from groupie_server.api.schemas import (
    CatalogSongResponse,
    ParticipantResponse,
    PlaylistResponse,
    PlaylistSongResponse,
    QueueItemResponse,
    RecommendRequest,
    SessionResponse,
    SongPayload,
    UserResponse,
)
from groupie_server.database import get_db
from groupie_server.main import app
from groupie_server.models import Base
from groupie_server.sync.engine import SessionEngine
from groupie_server.sync.notifications import Notifier
from groupie_server.sync.store import StoreError
from groupie_server.sync.types import Identity, Song


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    rate_limit.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """In-memory RemoteStore. Put method names in ``failing`` to make them raise."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.calls: list[tuple] = []
        self.failing: set[str] = set()
        self.users: dict[str, UserResponse] = {}
        self.playlists: dict[str, PlaylistResponse] = {}
        self.owners: dict[str, str] = {}
        self.songs: dict[str, list[PlaylistSongResponse]] = {}
        self.sessions: dict[str, SessionResponse] = {}
        self.participants: dict[str, list[ParticipantResponse]] = {}
        self.queue: dict[str, list[QueueItemResponse]] = {}
        self.catalog: list[CatalogSongResponse] = []

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.failing:
            raise StoreError(f"{name} failed")

    def calls_to(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def _id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # Seeding helpers

    def seed_playlist(self, name: str, owner_id: str = "owner", songs: list[Song] = ()) -> PlaylistResponse:
        playlist = PlaylistResponse(
            id=self._id("pl"), name=name, album_art=None, created_at=datetime.now(timezone.utc)
        )
        self.playlists[playlist.id] = playlist
        self.owners[playlist.id] = owner_id
        self._set_songs(playlist.id, [s.to_payload() for s in songs])
        return playlist

    def seed_session(self, playlist_id: str, code: str, settings: dict | None = None) -> SessionResponse:
        playlist = self.playlists[playlist_id]
        session = SessionResponse(
            id=self._id("s"),
            code=code.upper(),
            playlist_id=playlist_id,
            is_active=True,
            settings=settings,
            playlist_name=playlist.name,
            playlist_album_art=playlist.album_art,
        )
        self.sessions[session.id] = session
        self.participants[session.id] = []
        self.queue[session.id] = []
        return session

    def seed_queue(self, session_id: str, song: Song, name: str = "Sam", role: str = "guest") -> None:
        rows = self.queue[session_id]
        rows.append(
            QueueItemResponse(
                id=next(self._ids),
                session_id=session_id,
                song_id=song.id,
                title=song.title,
                artist=song.artist,
                album=song.album,
                album_art=song.album_art,
                queued_by_name=name,
                queued_by_type=role,
                position=max((r.position for r in rows), default=-1) + 1,
            )
        )

    def seed_participant(self, session_id: str, name: str, role: str = "guest") -> ParticipantResponse:
        participant = ParticipantResponse(id=self._id("p"), session_id=session_id, name=name, role=role)
        self.participants[session_id].append(participant)
        return participant

    def queued_ids(self, session_id: str) -> list[str]:
        return [r.song_id for r in self.queue[session_id]]

    def _set_songs(self, playlist_id: str, songs: list[SongPayload]) -> None:
        self.songs[playlist_id] = [
            PlaylistSongResponse(
                playlist_id=playlist_id,
                song_id=s.id,
                title=s.title,
                artist=s.artist,
                album=s.album,
                album_art=s.album_art,
                position=i,
            )
            for i, s in enumerate(songs)
        ]

    # RemoteStore

    async def get_or_create_user(self, email, display_name):
        self._call("get_or_create_user", email, display_name)
        email = email.lower()
        if email not in self.users:
            self.users[email] = UserResponse(id=self._id("u"), email=email, display_name=display_name)
        return self.users[email]

    async def create_playlist(self, name, album_art, owner_id):
        self._call("create_playlist", name, album_art, owner_id)
        playlist = self.seed_playlist(name, owner_id)
        playlist.album_art = album_art
        return playlist

    async def list_playlists(self, owner_id):
        self._call("list_playlists", owner_id)
        return [p for pid, p in self.playlists.items() if self.owners[pid] == owner_id]

    async def list_songs(self, playlist_id):
        self._call("list_songs", playlist_id)
        return list(self.songs.get(playlist_id, []))

    async def replace_songs(self, playlist_id, songs):
        self._call("replace_songs", playlist_id, [s.id for s in songs])
        self._set_songs(playlist_id, list(songs))

    async def create_session(self, playlist_id, code, settings):
        self._call("create_session", playlist_id, code, settings)
        return self.seed_session(playlist_id, code, settings)

    async def fetch_session_by_code(self, code):
        self._call("fetch_session_by_code", code)
        for session in reversed(list(self.sessions.values())):
            if session.code == code.upper() and session.is_active:
                return session
        return None

    async def fetch_settings(self, session_id):
        self._call("fetch_settings", session_id)
        session = self.sessions.get(session_id)
        return session.settings if session else None

    async def update_settings(self, session_id, settings):
        self._call("update_settings", session_id, settings)
        self.sessions[session_id].settings = settings

    async def add_participant(self, session_id, name, role):
        self._call("add_participant", session_id, name, role)
        return self.seed_participant(session_id, name, role)

    async def list_participants(self, session_id):
        self._call("list_participants", session_id)
        return list(self.participants.get(session_id, []))

    async def remove_participant(self, session_id, participant_id):
        self._call("remove_participant", session_id, participant_id)
        self.participants[session_id] = [
            p for p in self.participants[session_id] if p.id != participant_id
        ]

    async def add_to_queue(self, session_id, song, queued_by_name, queued_by_type):
        self._call("add_to_queue", session_id, song.id, queued_by_name, queued_by_type)
        self.seed_queue(session_id, Song(song.id, song.title, song.artist), queued_by_name, queued_by_type)

    async def list_queue(self, session_id):
        self._call("list_queue", session_id)
        return list(self.queue.get(session_id, []))

    async def remove_from_queue(self, session_id, song_id):
        self._call("remove_from_queue", session_id, song_id)
        self.queue[session_id] = [r for r in self.queue[session_id] if r.song_id != song_id]

    async def clear_queue(self, session_id):
        self._call("clear_queue", session_id)
        self.queue[session_id] = []

    async def list_catalog(self):
        self._call("list_catalog")
        return list(self.catalog)

    async def recommend(self, query: RecommendRequest):
        self._call("recommend", query.limit)
        return sorted(self.catalog, key=lambda c: -c.popularity)[: query.limit]


def make_songs(n: int, prefix: str = "song") -> list[Song]:
    return [Song(id=f"{prefix}-{i}", title=f"Title {i}", artist=f"Artist {i}") for i in range(1, n + 1)]


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier(clock) -> Notifier:
    return Notifier(clock=clock, default_seconds=5.0, notice_seconds=3.0)


@pytest.fixture
def engine(store, notifier, clock) -> SessionEngine:
    """Engine with background loops off; tests tick the reconciler and timer themselves."""
    return SessionEngine(
        store,
        notifier,
        identity=Identity(id="u-host", email="host@example.com", display_name="Host"),
        autorun=False,
        tick_seconds=0.1,
        song_duration=1,
        clock=clock,
        demo_mode=False,
    )


@pytest.fixture
def make_engine(store, clock):
    """Another client sharing the same store, e.g. a guest joining the host's session."""

    def _make(identity: Identity | None = None) -> SessionEngine:
        return SessionEngine(
            store,
            Notifier(clock=clock, default_seconds=5.0, notice_seconds=3.0),
            identity=identity,
            autorun=False,
            tick_seconds=0.1,
            song_duration=1,
            clock=clock,
            demo_mode=False,
        )

    return _make
