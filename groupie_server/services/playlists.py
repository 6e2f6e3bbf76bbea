# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Playlists and their song libraries."""

import logging
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from groupie_server.api.schemas import SongPayload
from groupie_server.models import Playlist, PlaylistSong

logger = logging.getLogger(__name__)


async def create_playlist(
    db: AsyncSession, owner_id: str, name: str, album_art: str | None
) -> Playlist:
    playlist = Playlist(owner_id=owner_id, name=name, album_art=album_art)
    db.add(playlist)
    await db.flush()
    await db.refresh(playlist)
    return playlist


async def list_playlists(db: AsyncSession, owner_id: str) -> list[Playlist]:
    """Owner's playlists, oldest first."""
    result = await db.execute(
        select(Playlist).where(Playlist.owner_id == owner_id).order_by(Playlist.created_at)
    )
    return list(result.scalars().all())


async def get_playlist(db: AsyncSession, playlist_id: str) -> Playlist | None:
    result = await db.execute(select(Playlist).where(Playlist.id == playlist_id))
    return result.scalar_one_or_none()


async def list_songs(db: AsyncSession, playlist_id: str) -> list[PlaylistSong]:
    result = await db.execute(
        select(PlaylistSong)
        .where(PlaylistSong.playlist_id == playlist_id)
        .order_by(PlaylistSong.position)
    )
    return list(result.scalars().all())


async def replace_songs(
    db: AsyncSession, playlist_id: str, songs: Iterable[SongPayload]
) -> int:
    """Delete the library and reinsert it with positional indexes. Returns the new size."""
    await db.execute(delete(PlaylistSong).where(PlaylistSong.playlist_id == playlist_id))
    rows = [
        PlaylistSong(
            playlist_id=playlist_id,
            song_id=s.id,
            title=s.title,
            artist=s.artist,
            album=s.album,
            album_art=s.album_art,
            position=index,
        )
        for index, s in enumerate(songs)
    ]
    db.add_all(rows)
    await db.flush()
    logger.debug("Playlist %s library rewritten with %d songs", playlist_id, len(rows))
    return len(rows)
