# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Client-side session sync: polling, playback and queue commands."""

from groupie_server.sync.engine import SessionEngine, required_votes
from groupie_server.sync.notifications import Notifier, NotificationDeduplicator
from groupie_server.sync.playback import PlaybackTimer
from groupie_server.sync.reconciler import SessionReconciler
from groupie_server.sync.store import (
    DatabaseStore,
    HttpStore,
    NotFoundError,
    RemoteStore,
    StoreError,
)
from groupie_server.sync.types import LocalState, PlaybackState, PlaylistState, QueuedSong, Song

__all__ = [
    "SessionEngine",
    "required_votes",
    "Notifier",
    "NotificationDeduplicator",
    "PlaybackTimer",
    "SessionReconciler",
    "DatabaseStore",
    "HttpStore",
    "NotFoundError",
    "RemoteStore",
    "StoreError",
    "LocalState",
    "PlaybackState",
    "PlaylistState",
    "QueuedSong",
    "Song",
]
