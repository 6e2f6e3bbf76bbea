# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Local (client-side) state for the session sync engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from groupie_server.api.schemas import (
    CatalogSongResponse,
    ParticipantResponse,
    PlaylistSongResponse,
    QueueItemResponse,
    SessionSettings,
    SongPayload,
)

Role = Literal["host", "user", "guest"]
View = Literal["home", "playlist"]

GUEST_ID = "guest"


class PlaybackState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"


@dataclass(frozen=True)
class Song:
    """Catalog song. Shared by reference between libraries and queues."""
    id: str
    title: str
    artist: str
    album: str = ""
    album_art: str = ""

    def to_payload(self) -> SongPayload:
        return SongPayload(
            id=self.id,
            title=self.title,
            artist=self.artist,
            album=self.album,
            album_art=self.album_art,
        )


@dataclass(frozen=True)
class QueuedBy:
    type: Role
    name: str


@dataclass(frozen=True)
class QueuedSong(Song):
    """Queue entry. ``id`` is the song id, so the same id may appear twice."""
    queued_by: QueuedBy = field(default_factory=lambda: QueuedBy("user", "You"))

    @classmethod
    def from_song(cls, song: Song, queued_by: QueuedBy) -> "QueuedSong":
        return cls(
            id=song.id,
            title=song.title,
            artist=song.artist,
            album=song.album,
            album_art=song.album_art,
            queued_by=queued_by,
        )


@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    role: Role


@dataclass(frozen=True)
class Identity:
    """Whoever is using this client. Guests carry the ``"guest"`` sentinel id."""
    id: str
    email: str
    display_name: str

    @property
    def is_guest(self) -> bool:
        return self.id == GUEST_ID

    @classmethod
    def guest(cls) -> "Identity":
        return cls(id=GUEST_ID, email=GUEST_ID, display_name="Guest")


@dataclass
class PlaylistState:
    """Local mirror of a playlist and, while one runs, its session."""
    id: str
    name: str
    album_art: str | None = None
    songs: list[Song] = field(default_factory=list)
    is_session_active: bool = False
    session_code: str | None = None
    session_id: str | None = None
    queue: list[QueuedSong] = field(default_factory=list)
    has_joined_session: bool = False
    participant_id: str | None = None
    settings: SessionSettings = field(default_factory=SessionSettings)
    participants: list[Participant] = field(default_factory=list)
    # None means unlimited
    credits_remaining: int | None = None
    has_voted_to_skip: bool = False
    skip_votes: set[str] = field(default_factory=set)

    @property
    def is_live(self) -> bool:
        """Session running with a remote queue behind it."""
        return self.is_session_active and bool(self.session_id)


@dataclass
class LocalState:
    playlists: dict[str, PlaylistState] = field(default_factory=dict)
    active_playlist_id: str | None = None
    view: View = "home"
    identity: Identity | None = None
    login_requested: bool = False
    current_song_index: int = 0
    progress: float = 0.0
    playback: PlaybackState = PlaybackState.STOPPED

    @property
    def active(self) -> PlaylistState | None:
        if self.active_playlist_id is None:
            return None
        return self.playlists.get(self.active_playlist_id)

    @property
    def current_song(self) -> QueuedSong | None:
        playlist = self.active
        if playlist is None or not (0 <= self.current_song_index < len(playlist.queue)):
            return None
        return playlist.queue[self.current_song_index]

    @property
    def is_playing(self) -> bool:
        return self.playback is PlaybackState.PLAYING

    def clamp_index(self) -> None:
        """Keep current_song_index a valid queue index, or 0 for an empty queue."""
        playlist = self.active
        size = len(playlist.queue) if playlist else 0
        if not (0 <= self.current_song_index < size):
            self.current_song_index = 0


def song_from_row(row: PlaylistSongResponse) -> Song:
    return Song(
        id=row.song_id or row.title,
        title=row.title,
        artist=row.artist,
        album=row.album or "",
        album_art=row.album_art or "",
    )


def song_from_catalog(row: CatalogSongResponse) -> Song:
    return Song(
        id=row.song_id,
        title=row.title,
        artist=row.artist,
        album=row.album or "",
        album_art=row.album_art or "",
    )


def queued_song_from_row(row: QueueItemResponse) -> QueuedSong:
    return QueuedSong(
        id=row.song_id,
        title=row.title,
        artist=row.artist,
        album=row.album or "",
        album_art=row.album_art or "",
        queued_by=QueuedBy(type=row.queued_by_type, name=row.queued_by_name),
    )


def participant_from_row(row: ParticipantResponse) -> Participant:
    return Participant(id=row.id, name=row.name, role=row.role)
