# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Listening session models: the session row, its participants and its queue."""

from datetime import datetime
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupie_server.models.base import Base, TimestampMixin, new_uuid


class ListeningSession(Base, TimestampMixin):
    """Ephemeral, code-addressable listening session bound to one playlist."""

    __tablename__ = "listening_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    playlist_id: Mapped[str] = mapped_column(
        ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # camelCase settings document, see SessionSettings
    settings: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    playlist: Mapped["Playlist"] = relationship("Playlist")
    participants: Mapped[list["SessionParticipant"]] = relationship(
        "SessionParticipant",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionParticipant.created_at",
    )


class SessionParticipant(Base, TimestampMixin):
    """Host, logged-in user or guest present in a session."""

    __tablename__ = "session_participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("listening_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(8), nullable=False)  # host | user | guest

    session: Mapped["ListeningSession"] = relationship(
        "ListeningSession", back_populates="participants"
    )


class SessionQueueItem(Base):
    """Queued song in a session. Ordered by position; song_id is not unique."""

    __tablename__ = "session_queue"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("listening_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    song_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    artist: Mapped[str] = mapped_column(String(255), nullable=False)
    album: Mapped[str | None] = mapped_column(String(255), nullable=True)
    album_art: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    queued_by_name: Mapped[str] = mapped_column(String(64), nullable=False)
    queued_by_type: Mapped[str] = mapped_column(String(8), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    queued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
