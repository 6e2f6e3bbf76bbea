# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from groupie_server.models.base import Base
from groupie_server.models.user import User
from groupie_server.models.playlist import Playlist, PlaylistSong
from groupie_server.models.session import ListeningSession, SessionParticipant, SessionQueueItem
from groupie_server.models.catalog import CatalogSong

__all__ = [
    "Base",
    "User",
    "Playlist",
    "PlaylistSong",
    "ListeningSession",
    "SessionParticipant",
    "SessionQueueItem",
    "CatalogSong",
]
