# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Playlist API routes."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from groupie_server.api.schemas import (
    PlaylistCreate,
    PlaylistResponse,
    PlaylistSongResponse,
    SongPayload,
)
from groupie_server.auth import get_current_user_id
from groupie_server.database import get_db
from groupie_server.services import playlists as playlist_service

router = APIRouter(prefix="/playlists", tags=["playlists"])


@router.get("", response_model=list[PlaylistResponse])
async def list_playlists(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[PlaylistResponse]:
    """List current user's playlists."""
    playlists = await playlist_service.list_playlists(db, user_id)
    return [PlaylistResponse.model_validate(p) for p in playlists]


@router.post("", response_model=PlaylistResponse)
async def create_playlist(
    data: PlaylistCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> PlaylistResponse:
    """Create a new playlist."""
    playlist = await playlist_service.create_playlist(db, user_id, data.name, data.album_art)
    await db.commit()
    return PlaylistResponse.model_validate(playlist)


@router.get("/{playlist_id}/songs", response_model=list[PlaylistSongResponse])
async def get_playlist_songs(
    playlist_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[PlaylistSongResponse]:
    """Songs in a playlist library. Open to session participants, so no owner check."""
    songs = await playlist_service.list_songs(db, playlist_id)
    return [PlaylistSongResponse.model_validate(s) for s in songs]


@router.put("/{playlist_id}/songs")
async def replace_playlist_songs(
    playlist_id: str,
    songs: list[SongPayload],
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Replace the playlist library (full delete and reinsert, order = list order)."""
    playlist = await playlist_service.get_playlist(db, playlist_id)
    if not playlist:
        raise HTTPException(status_code=404, detail="Playlist not found")
    if playlist.owner_id != user_id:
        raise HTTPException(status_code=403, detail="Not the playlist owner")
    count = await playlist_service.replace_songs(db, playlist_id, songs)
    await db.commit()
    return {"status": "ok", "count": count}
