# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Listening session API routes: sessions, participants and the shared queue."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from groupie_server.api.schemas import (
    ParticipantCreate,
    ParticipantResponse,
    QueueAdd,
    QueueItemResponse,
    SessionCreate,
    SessionResponse,
    SessionSettings,
)
from groupie_server.database import get_db
from groupie_server.rate_limit import rate_limit_code_lookup
from groupie_server.services import playlists as playlist_service
from groupie_server.services import sessions as session_service

router = APIRouter(prefix="/sessions", tags=["sessions"])


async def _require_session(db: AsyncSession, session_id: str):
    session = await session_service.get_session(db, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("", response_model=SessionResponse)
async def create_session(
    data: SessionCreate,
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Start a session on a playlist under a caller-chosen code."""
    playlist = await playlist_service.get_playlist(db, data.playlist_id)
    if not playlist:
        raise HTTPException(status_code=404, detail="Playlist not found")
    if not data.code.strip():
        raise HTTPException(status_code=422, detail="Session code must not be blank")
    document = data.settings.to_document(partial=True) if data.settings is not None else None
    session = await session_service.create_session(db, data.playlist_id, data.code, document)
    await db.commit()
    return SessionResponse(
        id=session.id,
        code=session.code,
        playlist_id=session.playlist_id,
        is_active=session.is_active,
        settings=session.settings,
        playlist_name=playlist.name,
        playlist_album_art=playlist.album_art,
    )


@router.get(
    "/by-code/{code:path}",
    response_model=SessionResponse,
    dependencies=[Depends(rate_limit_code_lookup)],
)
async def get_session_by_code(
    code: str,
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Resolve an active session by its (case-insensitive) code."""
    found = await session_service.get_active_session_by_code(db, code)
    if not found:
        raise HTTPException(status_code=404, detail="Session not found or inactive")
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


@router.get("/{session_id}/settings")
async def get_session_settings(
    session_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    session = await _require_session(db, session_id)
    return {"settings": session.settings}


@router.put("/{session_id}/settings")
async def update_session_settings(
    session_id: str,
    settings: SessionSettings,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Store the fields the caller sent. Invalid values are rejected with 422."""
    document = settings.to_document(partial=True)
    if not await session_service.update_settings(db, session_id, document):
        raise HTTPException(status_code=404, detail="Session not found")
    await db.commit()
    return {"status": "ok"}


@router.post("/{session_id}/participants", response_model=ParticipantResponse)
async def add_participant(
    session_id: str,
    data: ParticipantCreate,
    db: AsyncSession = Depends(get_db),
) -> ParticipantResponse:
    await _require_session(db, session_id)
    participant = await session_service.add_participant(db, session_id, data.name, data.role)
    await db.commit()
    return ParticipantResponse.model_validate(participant)


@router.get("/{session_id}/participants", response_model=list[ParticipantResponse])
async def list_participants(
    session_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[ParticipantResponse]:
    participants = await session_service.list_participants(db, session_id)
    return [ParticipantResponse.model_validate(p) for p in participants]


@router.delete("/{session_id}/participants/{participant_id}")
async def remove_participant(
    session_id: str,
    participant_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    await session_service.remove_participant(db, session_id, participant_id)
    await db.commit()
    return {"status": "ok"}


@router.post("/{session_id}/queue", response_model=QueueItemResponse)
async def add_to_queue(
    session_id: str,
    data: QueueAdd,
    db: AsyncSession = Depends(get_db),
) -> QueueItemResponse:
    """Append a song at the end of the session queue."""
    await _require_session(db, session_id)
    item = await session_service.add_to_queue(
        db, session_id, data.song, data.queued_by_name, data.queued_by_type
    )
    await db.commit()
    return QueueItemResponse.model_validate(item)


@router.get("/{session_id}/queue", response_model=list[QueueItemResponse])
async def list_queue(
    session_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[QueueItemResponse]:
    """Session queue ordered by position."""
    items = await session_service.list_queue(db, session_id)
    return [QueueItemResponse.model_validate(i) for i in items]


@router.delete("/{session_id}/queue/songs/{song_id:path}")
async def remove_song_from_queue(
    session_id: str,
    song_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Remove every queue entry for this song id."""
    removed = await session_service.remove_from_queue(db, session_id, song_id)
    await db.commit()
    return {"status": "ok", "removed": removed}


@router.delete("/{session_id}/queue")
async def clear_queue(
    session_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    await session_service.clear_queue(db, session_id)
    await db.commit()
    return {"status": "ok"}
