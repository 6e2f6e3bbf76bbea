# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["host", "user", "guest"]
AutoplayMode = Literal["my-taste", "all-tastes", "playlist"]


# Session settings (shared with the sync engine)
class SessionSettings(BaseModel):
    """Per-session rules. Stored on the session row with camelCase keys.

    ``queues_per_hour`` and ``skip_percentage`` stay string-encoded integers,
    which is how clients have always sent them.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    is_group_playlist: bool = True
    unlimited_queuing: bool = True
    queues_per_hour: str = "3"
    autoplay_mode: AutoplayMode = "playlist"
    host_override: bool = False
    vote_to_skip: bool = False
    skip_percentage: str = "50"
    is_private_session: bool = False

    @field_validator("queues_per_hour", "skip_percentage", mode="before")
    @classmethod
    def _numbers_as_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(int(v))
        return v

    def merged(self, incoming: dict | None) -> "SessionSettings":
        """Overlay a (possibly partial) remote settings document on these settings."""
        if not incoming:
            return self.model_copy()
        # Accept snake_case keys too; camelCase is the stored form
        camel = {(to_camel(k) if "_" in k else k): v for k, v in incoming.items()}
        return SessionSettings.model_validate({**self.to_document(), **camel})

    def to_document(self, partial: bool = False) -> dict:
        """camelCase document. ``partial`` keeps only the fields that were set."""
        return self.model_dump(by_alias=True, exclude_unset=partial)


# Auth
class LoginRequest(BaseModel):
    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=64)


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"


# Playlist
class SongPayload(BaseModel):
    id: str
    title: str
    artist: str
    album: str | None = ""
    album_art: str | None = ""


class PlaylistCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    album_art: str | None = None

    @field_validator("name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()


class PlaylistResponse(BaseModel):
    id: str
    name: str
    album_art: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlaylistSongResponse(BaseModel):
    playlist_id: str
    song_id: str
    title: str
    artist: str
    album: str | None = None
    album_art: str | None = None
    position: int

    model_config = ConfigDict(from_attributes=True)


# Sessions
class SessionCreate(BaseModel):
    playlist_id: str
    code: str = Field(..., min_length=1, max_length=16)
    settings: SessionSettings | None = None


class SessionResponse(BaseModel):
    id: str
    code: str
    playlist_id: str
    is_active: bool
    settings: dict | None = None
    playlist_name: str | None = None
    playlist_album_art: str | None = None


class ParticipantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    role: Role


class ParticipantResponse(BaseModel):
    id: str
    session_id: str
    name: str
    role: Role

    model_config = ConfigDict(from_attributes=True)


class QueueAdd(BaseModel):
    song: SongPayload
    queued_by_name: str
    queued_by_type: Role


class QueueItemResponse(BaseModel):
    id: int
    session_id: str
    song_id: str
    title: str
    artist: str
    album: str | None = None
    album_art: str | None = None
    queued_by_name: str
    queued_by_type: Role
    position: int

    model_config = ConfigDict(from_attributes=True)


# Catalog
class CatalogSongResponse(BaseModel):
    song_id: str
    title: str
    artist: str
    album: str | None = None
    album_art: str | None = None
    energy: int
    danceability: int
    popularity: int
    is_explicit: bool
    tags: list[str] | None = None

    model_config = ConfigDict(from_attributes=True)


class RecommendRequest(BaseModel):
    energy: int | None = Field(None, ge=0, le=100)
    danceability: int | None = Field(None, ge=0, le=100)
    popularity: int | None = Field(None, ge=0, le=100)
    block_explicit: bool = False
    blocked_artists: list[str] = []
    include_tags: list[str] = []
    limit: int = Field(25, ge=1, le=500)
