# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Remote store clients.

The sync engine only sees ``RemoteStore``: one round trip per call, no
transactions across calls, eventually consistent. ``DatabaseStore`` talks to
the database directly, ``HttpStore`` goes through the REST API.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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
from groupie_server.config import settings
from groupie_server.services import catalog as catalog_service
from groupie_server.services import playlists as playlist_service
from groupie_server.services import sessions as session_service
from groupie_server.services import users as user_service

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A remote store call failed."""


class NotFoundError(StoreError):
    """The addressed row does not exist."""


class RemoteStore(Protocol):
    async def get_or_create_user(self, email: str, display_name: str) -> UserResponse: ...
    async def create_playlist(self, name: str, album_art: str | None, owner_id: str) -> PlaylistResponse: ...
    async def list_playlists(self, owner_id: str) -> list[PlaylistResponse]: ...
    async def list_songs(self, playlist_id: str) -> list[PlaylistSongResponse]: ...
    async def replace_songs(self, playlist_id: str, songs: list[SongPayload]) -> None: ...
    async def create_session(self, playlist_id: str, code: str, settings: dict | None) -> SessionResponse: ...
    async def fetch_session_by_code(self, code: str) -> SessionResponse | None: ...
    async def fetch_settings(self, session_id: str) -> dict | None: ...
    async def update_settings(self, session_id: str, settings: dict) -> None: ...
    async def add_participant(self, session_id: str, name: str, role: str) -> ParticipantResponse: ...
    async def list_participants(self, session_id: str) -> list[ParticipantResponse]: ...
    async def remove_participant(self, session_id: str, participant_id: str) -> None: ...
    async def add_to_queue(self, session_id: str, song: SongPayload, queued_by_name: str, queued_by_type: str) -> None: ...
    async def list_queue(self, session_id: str) -> list[QueueItemResponse]: ...
    async def remove_from_queue(self, session_id: str, song_id: str) -> None: ...
    async def clear_queue(self, session_id: str) -> None: ...
    async def list_catalog(self) -> list[CatalogSongResponse]: ...
    async def recommend(self, query: RecommendRequest) -> list[CatalogSongResponse]: ...


class DatabaseStore:
    """RemoteStore backed directly by the service layer. One DB session per call."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        if session_maker is None:
            from groupie_server.database import async_session_maker
            session_maker = async_session_maker
        self._session_maker = session_maker

    async def _run(self, fn: Callable[[AsyncSession], Any]) -> Any:
        async with self._session_maker() as db:
            try:
                result = await fn(db)
                await db.commit()
                return result
            except SQLAlchemyError as e:
                await db.rollback()
                raise StoreError(str(e)) from e

    async def get_or_create_user(self, email: str, display_name: str) -> UserResponse:
        async def op(db):
            user = await user_service.get_or_create_user(db, email, display_name)
            return UserResponse.model_validate(user)
        return await self._run(op)

    async def create_playlist(self, name: str, album_art: str | None, owner_id: str) -> PlaylistResponse:
        async def op(db):
            playlist = await playlist_service.create_playlist(db, owner_id, name, album_art)
            return PlaylistResponse.model_validate(playlist)
        return await self._run(op)

    async def list_playlists(self, owner_id: str) -> list[PlaylistResponse]:
        async def op(db):
            rows = await playlist_service.list_playlists(db, owner_id)
            return [PlaylistResponse.model_validate(p) for p in rows]
        return await self._run(op)

    async def list_songs(self, playlist_id: str) -> list[PlaylistSongResponse]:
        async def op(db):
            rows = await playlist_service.list_songs(db, playlist_id)
            return [PlaylistSongResponse.model_validate(s) for s in rows]
        return await self._run(op)

    async def replace_songs(self, playlist_id: str, songs: list[SongPayload]) -> None:
        await self._run(lambda db: playlist_service.replace_songs(db, playlist_id, songs))

    async def create_session(self, playlist_id: str, code: str, settings: dict | None) -> SessionResponse:
        async def op(db):
            playlist = await playlist_service.get_playlist(db, playlist_id)
            if not playlist:
                raise NotFoundError(f"Playlist {playlist_id} not found")
            session = await session_service.create_session(db, playlist_id, code, settings)
            return SessionResponse(
                id=session.id,
                code=session.code,
                playlist_id=session.playlist_id,
                is_active=session.is_active,
                settings=session.settings,
                playlist_name=playlist.name,
                playlist_album_art=playlist.album_art,
            )
        return await self._run(op)

    async def fetch_session_by_code(self, code: str) -> SessionResponse | None:
        async def op(db):
            found = await session_service.get_active_session_by_code(db, code)
            if not found:
                return None
            session, name, art = found
            return SessionResponse(
                id=session.id,
                code=session.code,
                playlist_id=session.playlist_id,
                is_active=session.is_active,
                settings=session.settings,
                playlist_name=name,
                playlist_album_art=art,
            )
        return await self._run(op)

    async def fetch_settings(self, session_id: str) -> dict | None:
        async def op(db):
            session = await session_service.get_session(db, session_id)
            return session.settings if session else None
        return await self._run(op)

    async def update_settings(self, session_id: str, settings: dict) -> None:
        await self._run(lambda db: session_service.update_settings(db, session_id, settings))

    async def add_participant(self, session_id: str, name: str, role: str) -> ParticipantResponse:
        async def op(db):
            participant = await session_service.add_participant(db, session_id, name, role)
            return ParticipantResponse.model_validate(participant)
        return await self._run(op)

    async def list_participants(self, session_id: str) -> list[ParticipantResponse]:
        async def op(db):
            rows = await session_service.list_participants(db, session_id)
            return [ParticipantResponse.model_validate(p) for p in rows]
        return await self._run(op)

    async def remove_participant(self, session_id: str, participant_id: str) -> None:
        await self._run(lambda db: session_service.remove_participant(db, session_id, participant_id))

    async def add_to_queue(
        self, session_id: str, song: SongPayload, queued_by_name: str, queued_by_type: str
    ) -> None:
        await self._run(
            lambda db: session_service.add_to_queue(db, session_id, song, queued_by_name, queued_by_type)
        )

    async def list_queue(self, session_id: str) -> list[QueueItemResponse]:
        async def op(db):
            rows = await session_service.list_queue(db, session_id)
            return [QueueItemResponse.model_validate(q) for q in rows]
        return await self._run(op)

    async def remove_from_queue(self, session_id: str, song_id: str) -> None:
        await self._run(lambda db: session_service.remove_from_queue(db, session_id, song_id))

    async def clear_queue(self, session_id: str) -> None:
        await self._run(lambda db: session_service.clear_queue(db, session_id))

    async def list_catalog(self) -> list[CatalogSongResponse]:
        async def op(db):
            rows = await catalog_service.list_catalog(db)
            return [CatalogSongResponse.model_validate(c) for c in rows]
        return await self._run(op)

    async def recommend(self, query: RecommendRequest) -> list[CatalogSongResponse]:
        async def op(db):
            rows = await catalog_service.recommend(
                db,
                energy=query.energy,
                danceability=query.danceability,
                popularity=query.popularity,
                block_explicit=query.block_explicit,
                blocked_artists=query.blocked_artists,
                include_tags=query.include_tags,
                limit=query.limit,
            )
            return [CatalogSongResponse.model_validate(c) for c in rows]
        return await self._run(op)


def _segment(value: str) -> str:
    """Escape a value for use as one URL path segment."""
    return quote(str(value), safe="")


class HttpStore:
    """RemoteStore over the REST API. Holds the identity token after login."""

    def __init__(self, client: httpx.AsyncClient | None = None, base_url: str | None = None):
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.store_url, timeout=10.0
        )
        self._token: str | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            r = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e
        if r.status_code == 404:
            raise NotFoundError(f"{method} {path}: not found")
        try:
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(f"{method} {path} returned {r.status_code}") from e
        return r.json()

    async def get_or_create_user(self, email: str, display_name: str) -> UserResponse:
        data = await self._request(
            "POST", "/auth/login", json={"email": email, "display_name": display_name}
        )
        self._token = data["access_token"]
        return UserResponse.model_validate(data["user"])

    async def create_playlist(self, name: str, album_art: str | None, owner_id: str) -> PlaylistResponse:
        # Owner comes from the token; owner_id is kept for interface parity
        data = await self._request("POST", "/playlists", json={"name": name, "album_art": album_art})
        return PlaylistResponse.model_validate(data)

    async def list_playlists(self, owner_id: str) -> list[PlaylistResponse]:
        data = await self._request("GET", "/playlists")
        return [PlaylistResponse.model_validate(p) for p in data]

    async def list_songs(self, playlist_id: str) -> list[PlaylistSongResponse]:
        data = await self._request("GET", f"/playlists/{_segment(playlist_id)}/songs")
        return [PlaylistSongResponse.model_validate(s) for s in data]

    async def replace_songs(self, playlist_id: str, songs: list[SongPayload]) -> None:
        await self._request(
            "PUT",
            f"/playlists/{_segment(playlist_id)}/songs",
            json=[s.model_dump() for s in songs],
        )

    async def create_session(self, playlist_id: str, code: str, settings: dict | None) -> SessionResponse:
        data = await self._request(
            "POST", "/sessions", json={"playlist_id": playlist_id, "code": code, "settings": settings}
        )
        return SessionResponse.model_validate(data)

    async def fetch_session_by_code(self, code: str) -> SessionResponse | None:
        try:
            data = await self._request("GET", f"/sessions/by-code/{_segment(code)}")
        except NotFoundError:
            return None
        return SessionResponse.model_validate(data)

    async def fetch_settings(self, session_id: str) -> dict | None:
        try:
            data = await self._request("GET", f"/sessions/{_segment(session_id)}/settings")
        except NotFoundError:
            return None
        return data.get("settings")

    async def update_settings(self, session_id: str, settings: dict) -> None:
        await self._request("PUT", f"/sessions/{_segment(session_id)}/settings", json=settings)

    async def add_participant(self, session_id: str, name: str, role: str) -> ParticipantResponse:
        data = await self._request(
            "POST",
            f"/sessions/{_segment(session_id)}/participants",
            json={"name": name, "role": role},
        )
        return ParticipantResponse.model_validate(data)

    async def list_participants(self, session_id: str) -> list[ParticipantResponse]:
        data = await self._request("GET", f"/sessions/{_segment(session_id)}/participants")
        return [ParticipantResponse.model_validate(p) for p in data]

    async def remove_participant(self, session_id: str, participant_id: str) -> None:
        await self._request(
            "DELETE", f"/sessions/{_segment(session_id)}/participants/{_segment(participant_id)}"
        )

    async def add_to_queue(
        self, session_id: str, song: SongPayload, queued_by_name: str, queued_by_type: str
    ) -> None:
        await self._request(
            "POST",
            f"/sessions/{_segment(session_id)}/queue",
            json={
                "song": song.model_dump(),
                "queued_by_name": queued_by_name,
                "queued_by_type": queued_by_type,
            },
        )

    async def list_queue(self, session_id: str) -> list[QueueItemResponse]:
        data = await self._request("GET", f"/sessions/{_segment(session_id)}/queue")
        return [QueueItemResponse.model_validate(q) for q in data]

    async def remove_from_queue(self, session_id: str, song_id: str) -> None:
        await self._request(
            "DELETE", f"/sessions/{_segment(session_id)}/queue/songs/{_segment(song_id)}"
        )

    async def clear_queue(self, session_id: str) -> None:
        await self._request("DELETE", f"/sessions/{_segment(session_id)}/queue")

    async def list_catalog(self) -> list[CatalogSongResponse]:
        data = await self._request("GET", "/catalog")
        return [CatalogSongResponse.model_validate(c) for c in data]

    async def recommend(self, query: RecommendRequest) -> list[CatalogSongResponse]:
        data = await self._request("POST", "/catalog/recommend", json=query.model_dump())
        return [CatalogSongResponse.model_validate(c) for c in data]
