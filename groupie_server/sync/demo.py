# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Simulated guests for demos. Only runs on public sessions with demo mode on."""

import asyncio
import logging
import random
import time
from typing import TYPE_CHECKING

from groupie_server.config import settings
from groupie_server.sync.store import RemoteStore, StoreError
from groupie_server.sync.types import (
    Participant,
    QueuedBy,
    QueuedSong,
    Song,
    participant_from_row,
)

if TYPE_CHECKING:
    from groupie_server.sync.engine import SessionEngine

logger = logging.getLogger(__name__)

NAMES = ["Skyler", "Alex", "Jordan", "Taylor", "Morgan", "Jamie", "Riley", "Casey"]
ADJECTIVES = ["Midnight", "Sunset", "Electric", "Golden", "Velvet", "Neon", "Forest", "Ocean", "Crimson", "Silver"]
NOUNS = ["Drive", "Breeze", "Pulse", "Echoes", "Starlight", "Waves", "Anthem", "Skyline", "Flicker", "Voyage"]
ARTISTS = [
    "Neon Roads", "Lo-Fi Lanes", "Cardio Crew", "Focus Fields", "Harbor Lights",
    "City Lanterns", "Freeway Flyers", "Soft Currents", "Night Desk", "Stereo Pulse",
]


def make_demo_song(rng: random.Random) -> Song:
    adj = rng.choice(ADJECTIVES)
    noun = rng.choice(NOUNS)
    seed = f"{adj}-{noun}-{rng.randrange(100000)}"
    return Song(
        id=f"demo-{int(time.time() * 1000)}-{rng.randrange(100000)}",
        title=f"{adj} {noun}",
        artist=rng.choice(ARTISTS),
        album=f"{adj} Collection",
        album_art=f"https://picsum.photos/seed/{seed}/300",
    )


class DemoActivity:
    def __init__(
        self,
        engine: "SessionEngine",
        store: RemoteStore,
        interval: float | None = None,
        rng: random.Random | None = None,
    ):
        self.engine = engine
        self.store = store
        self.interval = settings.demo_interval_seconds if interval is None else interval
        self.rng = rng or random.Random()
        self._task: asyncio.Task | None = None
        self._key: tuple[str, str] | None = None

    def start(self, playlist_id: str, session_id: str) -> None:
        key = (playlist_id, session_id)
        if key == self._key:
            return
        self.stop()
        self._key = key
        self._task = asyncio.create_task(self._run(playlist_id, session_id))

    def stop(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None
        self._key = None

    async def _run(self, playlist_id: str, session_id: str) -> None:
        await self._guarded(self.burst(playlist_id, session_id))
        while True:
            await asyncio.sleep(self.interval)
            await self._guarded(self.step(playlist_id, session_id))

    async def _guarded(self, work) -> None:
        try:
            await work
        except asyncio.CancelledError:
            raise
        except StoreError as e:
            logger.warning("Demo activity failed: %s", e)
        except Exception:
            logger.exception("Demo activity crashed")

    async def step(self, playlist_id: str, session_id: str) -> None:
        roll = self.rng.random()
        if roll < 0.5:
            await self.burst(playlist_id, session_id, new_guest=True)
        elif roll < 0.85:
            await self.burst(playlist_id, session_id)
        else:
            await self.remove_guest(playlist_id, session_id)

    async def burst(self, playlist_id: str, session_id: str, new_guest: bool = False) -> QueuedSong:
        """Queue a synthesised song as some guest, adding the guest when needed."""
        guests = [] if new_guest else [
            p for p in await self.store.list_participants(session_id) if p.role == "guest"
        ]
        added: Participant | None = None
        if guests:
            name = self.rng.choice(guests).name
        else:
            name = self.rng.choice(NAMES)
            added = participant_from_row(
                await self.store.add_participant(session_id, name, "guest")
            )

        song = make_demo_song(self.rng)
        await self.store.add_to_queue(session_id, song.to_payload(), name, "guest")
        entry = QueuedSong.from_song(song, QueuedBy("guest", name))

        playlist = self.engine.state.playlists.get(playlist_id)
        if playlist is not None and playlist.session_id == session_id:
            if added and all(p.id != added.id for p in playlist.participants):
                playlist.participants.append(added)
            playlist.queue.append(entry)
        return entry

    async def remove_guest(self, playlist_id: str, session_id: str) -> Participant | None:
        guests = [p for p in await self.store.list_participants(session_id) if p.role == "guest"]
        if not guests:
            return None
        target = participant_from_row(self.rng.choice(guests))
        await self.store.remove_participant(session_id, target.id)

        playlist = self.engine.state.playlists.get(playlist_id)
        if playlist is not None:
            playlist.participants = [p for p in playlist.participants if p.id != target.id]
        self.engine.reconciler.forget_participant(session_id, target.id)
        self.engine.notifier.push(f"{target.name} left the session")
        return target
