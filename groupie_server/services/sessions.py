# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Listening sessions: session rows, participants and the shared queue."""

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from groupie_server.api.schemas import SongPayload
from groupie_server.models import (
    ListeningSession,
    Playlist,
    SessionParticipant,
    SessionQueueItem,
)

logger = logging.getLogger(__name__)


async def create_session(
    db: AsyncSession, playlist_id: str, code: str, settings: dict | None
) -> ListeningSession:
    session = ListeningSession(
        playlist_id=playlist_id,
        code=code.strip().upper(),
        is_active=True,
        settings=settings,
    )
    db.add(session)
    await db.flush()
    await db.refresh(session)
    logger.info("Session %s started for playlist %s", session.code, playlist_id)
    return session


async def get_session(db: AsyncSession, session_id: str) -> ListeningSession | None:
    result = await db.execute(select(ListeningSession).where(ListeningSession.id == session_id))
    return result.scalar_one_or_none()


async def get_active_session_by_code(
    db: AsyncSession, code: str
) -> tuple[ListeningSession, str | None, str | None] | None:
    """Active session for a code plus its playlist's name and cover. Newest wins."""
    result = await db.execute(
        select(ListeningSession, Playlist.name, Playlist.album_art)
        .join(Playlist, ListeningSession.playlist_id == Playlist.id)
        .where(
            ListeningSession.code == code.strip().upper(),
            ListeningSession.is_active.is_(True),
        )
        .order_by(ListeningSession.created_at.desc())
        .limit(1)
    )
    row = result.one_or_none()
    if not row:
        return None
    session, name, art = row
    return session, name, art


async def update_settings(db: AsyncSession, session_id: str, settings: dict) -> bool:
    session = await get_session(db, session_id)
    if not session:
        return False
    session.settings = settings
    await db.flush()
    return True


async def add_participant(
    db: AsyncSession, session_id: str, name: str, role: str
) -> SessionParticipant:
    participant = SessionParticipant(session_id=session_id, name=name, role=role)
    db.add(participant)
    await db.flush()
    await db.refresh(participant)
    return participant


async def list_participants(db: AsyncSession, session_id: str) -> list[SessionParticipant]:
    result = await db.execute(
        select(SessionParticipant)
        .where(SessionParticipant.session_id == session_id)
        .order_by(SessionParticipant.created_at)
    )
    return list(result.scalars().all())


async def remove_participant(db: AsyncSession, session_id: str, participant_id: str) -> None:
    await db.execute(
        delete(SessionParticipant).where(
            SessionParticipant.session_id == session_id,
            SessionParticipant.id == participant_id,
        )
    )


async def add_to_queue(
    db: AsyncSession,
    session_id: str,
    song: SongPayload,
    queued_by_name: str,
    queued_by_type: str,
) -> SessionQueueItem:
    """Append at max(position)+1 (0 for an empty queue).

    Two writers racing here can collide on a position; readers order by
    position then id, so a collision only ties the order until the next poll.
    """
    max_pos = await db.scalar(
        select(func.max(SessionQueueItem.position)).where(
            SessionQueueItem.session_id == session_id
        )
    )
    item = SessionQueueItem(
        session_id=session_id,
        song_id=song.id,
        title=song.title,
        artist=song.artist,
        album=song.album,
        album_art=song.album_art,
        queued_by_name=queued_by_name,
        queued_by_type=queued_by_type,
        position=0 if max_pos is None else max_pos + 1,
    )
    db.add(item)
    await db.flush()
    await db.refresh(item)
    return item


async def list_queue(db: AsyncSession, session_id: str) -> list[SessionQueueItem]:
    result = await db.execute(
        select(SessionQueueItem)
        .where(SessionQueueItem.session_id == session_id)
        .order_by(SessionQueueItem.position, SessionQueueItem.id)
    )
    return list(result.scalars().all())


async def remove_from_queue(db: AsyncSession, session_id: str, song_id: str) -> int:
    """Delete every queue row for this song id. Returns rows removed."""
    result = await db.execute(
        delete(SessionQueueItem).where(
            SessionQueueItem.session_id == session_id,
            SessionQueueItem.song_id == song_id,
        )
    )
    return result.rowcount or 0


async def clear_queue(db: AsyncSession, session_id: str) -> None:
    await db.execute(delete(SessionQueueItem).where(SessionQueueItem.session_id == session_id))
