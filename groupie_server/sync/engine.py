# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Client-side session engine.

Commands apply to the active playlist. Each one checks permissions and
credits, updates local state first and then talks to the remote store.
Remote failures are logged and left for the next poll to reconcile; local
state is never rolled back.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

from pydantic import ValidationError

from groupie_server.api.schemas import CatalogSongResponse, SessionResponse, SessionSettings
from groupie_server.config import settings as app_settings
from groupie_server.sync.codes import generate_session_code, normalize_code
from groupie_server.sync.credits import (
    available_credits,
    consume_credits,
    initial_credits,
    parse_int,
    reset_credits,
)
from groupie_server.sync.demo import DemoActivity
from groupie_server.sync.notifications import Notifier
from groupie_server.sync.playback import PlaybackTimer
from groupie_server.sync.recommendations import generate_recommendations
from groupie_server.sync.reconciler import SessionReconciler
from groupie_server.sync.store import RemoteStore, StoreError
from groupie_server.sync.types import (
    Identity,
    LocalState,
    Participant,
    PlaylistState,
    QueuedBy,
    QueuedSong,
    Song,
    participant_from_row,
    queued_song_from_row,
    song_from_catalog,
    song_from_row,
)

logger = logging.getLogger(__name__)

SELF_NAME = "You"


def required_votes(participants: int, percentage: int) -> int:
    """ceil(participants * percentage / 100) without going through floats."""
    return max(0, -(-participants * percentage // 100))


class SessionEngine:
    def __init__(
        self,
        store: RemoteStore,
        notifier: Notifier | None = None,
        identity: Identity | None = None,
        *,
        autorun: bool = True,
        poll_interval: float | None = None,
        tick_seconds: float | None = None,
        song_duration: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        demo_mode: bool | None = None,
        demo: DemoActivity | None = None,
    ):
        self.store = store
        self.state = LocalState(identity=identity)
        self.notifier = notifier or Notifier(clock=clock)
        self.autorun = autorun
        self.reconciler = SessionReconciler(
            self.state, store, self.notifier, interval=poll_interval, autorun=autorun
        )
        self.timer = PlaybackTimer(
            self.state,
            self._complete_current,
            tick_seconds=tick_seconds,
            duration_seconds=song_duration,
            autorun=autorun,
        )
        self.demo_mode = app_settings.demo_mode if demo_mode is None else demo_mode
        self.demo = demo or DemoActivity(self, store)
        self._tasks: set[asyncio.Task] = set()

    # Background work

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for fire-and-forget store calls, including removal retries."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.reconciler.drain()

    async def close(self) -> None:
        self.reconciler.unbind()
        self.demo.stop()
        self.timer.pause()
        await self.drain()

    def _sync_background(self) -> None:
        """Bind the poll loop (and demo guests) to the active live session, if any."""
        playlist = self.state.active
        if playlist is not None and playlist.is_live:
            self.reconciler.bind(playlist.id, playlist.session_id)
            if self.demo_mode and self.autorun and not playlist.settings.is_private_session:
                self.demo.start(playlist.id, playlist.session_id)
            else:
                self.demo.stop()
        else:
            self.reconciler.unbind()
            self.demo.stop()

    def activate(self, playlist_id: str | None) -> PlaylistState | None:
        if playlist_id is not None and playlist_id not in self.state.playlists:
            return None
        self.state.active_playlist_id = playlist_id
        self.state.view = "playlist" if playlist_id else "home"
        self.state.clamp_index()
        self._sync_background()
        return self.state.active

    # Identity

    async def login(self, email: str, display_name: str) -> Identity | None:
        try:
            user = await self.store.get_or_create_user(email, display_name)
        except StoreError as e:
            logger.warning("Login for %s failed: %s", email, e)
            return None
        self.state.identity = Identity(
            id=user.id,
            email=user.email or email,
            display_name=user.display_name or display_name,
        )
        self.state.login_requested = False
        logger.info("Logged in as %s", user.id)
        await self.load_playlists()
        return self.state.identity

    async def continue_as_guest(self) -> Identity:
        self.state.identity = Identity.guest()
        self.state.login_requested = False
        await self.load_playlists()
        return self.state.identity

    async def logout(self) -> None:
        self.timer.stop()
        self.state.identity = None
        self.state.playlists = {}
        self.activate(None)

    async def load_playlists(self) -> list[PlaylistState]:
        """Replace the local library with the identity's playlists. Guests have none."""
        identity = self.state.identity
        loaded: dict[str, PlaylistState] = {}
        if identity is not None and not identity.is_guest:
            try:
                rows = await self.store.list_playlists(identity.id)
                song_lists = await asyncio.gather(*(self.store.list_songs(p.id) for p in rows))
            except StoreError as e:
                logger.warning("Loading playlists for %s failed: %s", identity.id, e)
                return list(self.state.playlists.values())
            for row, songs in zip(rows, song_lists):
                loaded[row.id] = PlaylistState(
                    id=row.id,
                    name=row.name,
                    album_art=row.album_art,
                    songs=[song_from_row(s) for s in songs],
                )
        self.state.playlists = loaded
        if self.state.active_playlist_id not in loaded:
            self.activate(None)
        return list(loaded.values())

    # Playlists

    async def create_playlist(
        self,
        name: str,
        album_art: str | None = None,
        settings: SessionSettings | None = None,
    ) -> PlaylistState | None:
        identity = self.state.identity
        if identity is None or identity.is_guest:
            self.state.login_requested = True
            return None
        name = (name or "").strip()
        if not name:
            return None
        try:
            row = await self.store.create_playlist(name, album_art, identity.id)
        except StoreError as e:
            logger.warning("Creating playlist %r failed: %s", name, e)
            return None
        playlist = PlaylistState(
            id=row.id,
            name=row.name,
            album_art=row.album_art,
            settings=settings or SessionSettings(),
        )
        self.state.playlists[playlist.id] = playlist
        self.activate(playlist.id)
        self.notifier.open_session_notice("", playlist.name, "created")
        return playlist

    async def open_playlist(self, playlist_id: str) -> PlaylistState | None:
        playlist = self.activate(playlist_id)
        if playlist is None:
            return None
        try:
            rows = await self.store.list_songs(playlist_id)
        except StoreError as e:
            logger.warning("Loading songs for %s failed: %s", playlist_id, e)
        else:
            playlist.songs = [song_from_row(r) for r in rows]
        return playlist

    async def _save_library(self, playlist_id: str, songs: list[Song]) -> bool:
        try:
            await self.store.replace_songs(playlist_id, [s.to_payload() for s in songs])
        except StoreError as e:
            logger.warning("Saving songs for playlist %s failed: %s", playlist_id, e)
            return False
        return True

    async def add_songs(self, songs: Iterable[Song]) -> None:
        """Replace the active playlist's library."""
        playlist = self.state.active
        if playlist is None:
            return
        songs = list(songs)
        playlist.songs = songs
        self.state.view = "playlist"
        await self._save_library(playlist.id, songs)

    async def add_songs_to_playlist(self, playlist_id: str, songs: Iterable[Song]) -> list[Song]:
        """Append to any playlist, including one not loaded locally."""
        songs = list(songs)
        if not songs:
            return []
        target = self.state.playlists.get(playlist_id)
        if target is not None:
            current = target.songs
        else:
            try:
                current = [song_from_row(r) for r in await self.store.list_songs(playlist_id)]
            except StoreError as e:
                logger.warning("Loading songs for %s failed: %s", playlist_id, e)
                return []
        merged = current + songs
        if target is not None:
            target.songs = merged
        await self._save_library(playlist_id, merged)
        return merged

    async def reorder_playlist_songs(self, songs: Iterable[Song]) -> None:
        playlist = self.state.active
        if playlist is None:
            return
        playlist.songs = list(songs)
        await self._save_library(playlist.id, playlist.songs)

    async def remove_playlist_song(self, song_id: str) -> None:
        playlist = self.state.active
        if playlist is None:
            return
        playlist.songs = [s for s in playlist.songs if s.id != song_id]
        await self._save_library(playlist.id, playlist.songs)

    # Queue

    async def add_to_queue(self, songs: Iterable[Song]) -> list[QueuedSong]:
        """Queue a batch. Returns the entries actually admitted."""
        admitted = await self._enqueue(list(songs))
        if self.state.active is not None:
            self.state.view = "playlist"
        return admitted

    async def quick_add(self, song: Song) -> QueuedSong | None:
        admitted = await self._enqueue([song])
        return admitted[0] if admitted else None

    async def _enqueue(self, songs: list[Song]) -> list[QueuedSong]:
        playlist = self.state.active
        if playlist is None or not songs:
            return []
        if playlist.has_joined_session and not playlist.settings.is_group_playlist:
            self.notifier.push("Guest queuing is disabled for this session.")
            return []
        available = available_credits(playlist)
        if available is not None:
            if available <= 0:
                self.notifier.push("You have no queues remaining")
                return []
            songs = songs[:available]

        entries = [QueuedSong.from_song(s, QueuedBy("user", SELF_NAME)) for s in songs]
        was_empty = not playlist.queue
        playlist.queue = playlist.queue + entries
        if available is not None:
            playlist.credits_remaining = consume_credits(available, len(entries))
        for entry in entries:
            self.reconciler.queue_notified.mark(entry.id)
            self.notifier.push(f'Queued "{entry.title}" by {entry.artist}')
        if was_empty and playlist.queue:
            self.timer.start_queue()

        if playlist.is_live:
            session_id = playlist.session_id
            queued_by_type = "user" if playlist.has_joined_session else "host"
            for entry in entries:
                self.reconciler.track_optimistic(entry)
            # One at a time so remote positions follow local order
            for entry in entries:
                try:
                    await self.store.add_to_queue(
                        session_id, entry.to_payload(), SELF_NAME, queued_by_type
                    )
                except StoreError as e:
                    logger.warning("Queueing %s in session %s failed: %s", entry.id, session_id, e)
                finally:
                    self.reconciler.settle_optimistic(entry.id)
        return entries

    async def remove_from_queue(self, song_id: str) -> bool:
        playlist = self.state.active
        if playlist is None:
            return False
        if (
            playlist.is_session_active
            and not playlist.has_joined_session
            and not playlist.settings.host_override
        ):
            self.notifier.push("Host override is off. You can't remove songs right now.")
            return False

        removed = next((s for s in playlist.queue if s.id == song_id), None)
        head_removed = bool(playlist.queue) and playlist.queue[0].id == song_id
        if playlist.is_live:
            self.reconciler.track_removal(playlist.session_id, song_id)
            await self._remove_remote(playlist.session_id, song_id)

        playlist.queue = [s for s in playlist.queue if s.id != song_id]
        if self.state.active is playlist:
            if head_removed and self.state.current_song_index == 0 and self.state.is_playing:
                self.timer.advance()
            self.state.clamp_index()
        if removed:
            self.notifier.push(f'You removed "{removed.title}" from queue')
        return removed is not None

    async def _remove_remote(self, session_id: str, song_id: str) -> bool:
        try:
            await self.store.remove_from_queue(session_id, song_id)
        except StoreError as e:
            logger.warning("Removing %s from session %s failed: %s", song_id, session_id, e)
            ok = False
        else:
            ok = True
        self.reconciler.removal_finished(song_id, ok)
        return ok

    def reorder_queue(self, queue: Iterable[QueuedSong]) -> None:
        """Local only; the remote queue keeps its own order."""
        playlist = self.state.active
        if playlist is None:
            return
        playlist.queue = list(queue)
        self.state.clamp_index()

    # Playback

    def play_song(self, song_id: str) -> bool:
        """Solo play: queue the library from ``song_id`` on and start."""
        playlist = self.state.active
        if playlist is None or playlist.is_session_active:
            return False
        index = next((i for i, s in enumerate(playlist.songs) if s.id == song_id), None)
        if index is None:
            return False
        playlist.queue = [
            QueuedSong.from_song(s, QueuedBy("user", SELF_NAME)) for s in playlist.songs[index:]
        ]
        self.timer.start_queue()
        return True

    def play(self) -> bool:
        if self.state.active is None:
            return False
        return self.timer.play()

    def pause(self) -> None:
        self.timer.pause()

    def skip(self) -> bool:
        playlist = self.state.active
        if playlist is None:
            return False
        if playlist.is_session_active:
            if playlist.has_joined_session:
                return False
            if not playlist.settings.host_override:
                self.notifier.push("Host override is off. You can't skip songs right now.")
                return False
            if not playlist.queue:
                return False
            self._drop_head(playlist)
            return True
        if self.state.current_song is None:
            return False
        self._advance_solo(playlist)
        return True

    def _complete_current(self) -> None:
        playlist = self.state.active
        if playlist is None:
            self.timer.stop()
        elif playlist.is_session_active:
            self._drop_head(playlist)
        else:
            self._advance_solo(playlist)

    def _drop_head(self, playlist: PlaylistState) -> None:
        finished = playlist.queue[0] if playlist.queue else None
        playlist.queue = playlist.queue[1:]
        self.state.current_song_index = 0
        self.timer.advance()
        if finished is not None and playlist.is_live:
            session_id = playlist.session_id
            self.reconciler.track_removal(session_id, finished.id)
            self._spawn(self._remove_remote(session_id, finished.id))

    def _advance_solo(self, playlist: PlaylistState) -> None:
        if self.state.current_song_index + 1 < len(playlist.queue):
            self.state.current_song_index += 1
            self.state.progress = 0.0
        else:
            self.timer.stop()

    # Voting

    def vote_to_skip(self) -> tuple[int, int] | None:
        """Register this participant's vote. Reports progress only; never skips."""
        playlist = self.state.active
        if playlist is None or not playlist.has_joined_session or playlist.has_voted_to_skip:
            return None
        total = len(playlist.participants) or 1
        votes = len(playlist.skip_votes) + 1
        required = required_votes(total, parse_int(playlist.settings.skip_percentage))
        playlist.has_voted_to_skip = True
        if playlist.participant_id:
            playlist.skip_votes.add(playlist.participant_id)
        self.notifier.push(f"You voted to skip ({votes}/{required} needed)", kind="vote")
        return votes, required

    # Sessions

    async def start_session(self, code: str | None = None) -> SessionResponse | None:
        """Go live under ``code``, or a freshly generated one when none is given."""
        playlist = self.state.active
        if playlist is None:
            return None
        code = generate_session_code() if code is None else normalize_code(code)
        if not code:
            return None
        try:
            session = await self.store.create_session(
                playlist.id, code, playlist.settings.to_document()
            )
        except StoreError as e:
            logger.error("Starting session %s for playlist %s failed: %s", code, playlist.id, e)
            self.notifier.push("Could not start session. Please try again.")
            return None
        try:
            host = participant_from_row(
                await self.store.add_participant(session.id, SELF_NAME, "host")
            )
        except StoreError as e:
            logger.warning("Registering host in session %s failed: %s", session.id, e)
            host = None

        playlist.is_session_active = True
        playlist.session_code = code
        playlist.session_id = session.id
        playlist.queue = []
        playlist.has_joined_session = False
        playlist.participant_id = host.id if host else None
        playlist.participants = [host or Participant(id="you", name=SELF_NAME, role="host")]
        self.timer.stop()
        self.state.view = "playlist"
        self.notifier.open_session_notice(code, playlist.name, "started")
        self._sync_background()
        return session

    def undo_session_start(self) -> bool:
        """Only while the "started" notice is open. The remote session row stays."""
        notice = self.notifier.session_notice
        playlist = self.state.active
        if notice is None or notice.kind != "started" or playlist is None:
            return False
        playlist.is_session_active = False
        playlist.session_code = None
        playlist.queue = []
        self.notifier.close_session_notice()
        self.timer.stop()
        self._sync_background()
        return True

    async def join_session(self, code: str, display_name: str | None = None) -> PlaylistState | None:
        code = normalize_code(code)
        if not code:
            return None
        name = (display_name or "").strip() or "Guest"

        try:
            session = await self.store.fetch_session_by_code(code)
        except StoreError as e:
            logger.warning("Looking up session %s failed: %s", code, e)
            session = None
        if session is None:
            self.notifier.push("Session not found or inactive")
            return None

        try:
            remote = SessionSettings().merged(session.settings)
        except ValidationError as e:
            logger.warning("Session %s has invalid settings, using defaults: %s", code, e)
            remote = SessionSettings()
        identity = self.state.identity
        if remote.is_private_session and (identity is None or identity.is_guest):
            self.notifier.push("Private session: please log in to join.")
            self.state.login_requested = True
            return None

        try:
            me = participant_from_row(await self.store.add_participant(session.id, name, "user"))
        except StoreError as e:
            logger.warning("Joining session %s failed: %s", session.id, e)
            me = None
        try:
            queue_rows, participant_rows, song_rows = await asyncio.gather(
                self.store.list_queue(session.id),
                self.store.list_participants(session.id),
                self.store.list_songs(session.playlist_id),
            )
        except StoreError as e:
            logger.warning("Loading session %s failed: %s", session.id, e)
            queue_rows, participant_rows, song_rows = [], [], []

        existing = self.state.playlists.get(session.playlist_id)
        if session.settings:
            joined_settings = remote
        elif existing is not None:
            joined_settings = existing.settings
        else:
            joined_settings = SessionSettings(is_group_playlist=True)
        playlist_name = session.playlist_name or "Session Playlist"

        playlist = PlaylistState(
            id=session.playlist_id,
            name=existing.name if existing else playlist_name,
            album_art=existing.album_art if existing else session.playlist_album_art,
            songs=[song_from_row(r) for r in song_rows],
            is_session_active=True,
            session_code=code,
            session_id=session.id,
            queue=[queued_song_from_row(r) for r in queue_rows],
            has_joined_session=True,
            participant_id=me.id if me else None,
            settings=joined_settings,
            participants=[participant_from_row(r) for r in participant_rows],
            credits_remaining=initial_credits(joined_settings),
        )
        self.state.playlists[playlist.id] = playlist
        self.activate(playlist.id)
        self.notifier.open_session_notice(code, playlist_name, "joined")
        logger.info("Joined session %s as %s", code, name)
        return playlist

    async def stop_session(self) -> bool:
        """Host: clear the remote queue. Participant: leave and go home."""
        playlist = self.state.active
        if playlist is None or not playlist.is_session_active:
            return False
        session_id = playlist.session_id
        joined = playlist.has_joined_session
        if session_id and not joined:
            try:
                await self.store.clear_queue(session_id)
            except StoreError as e:
                logger.warning("Clearing queue of session %s failed: %s", session_id, e)
        if session_id and joined and playlist.participant_id:
            try:
                await self.store.remove_participant(session_id, playlist.participant_id)
            except StoreError as e:
                logger.warning("Leaving session %s failed: %s", session_id, e)

        playlist.is_session_active = False
        playlist.session_code = None
        playlist.queue = []
        self.timer.stop()
        if joined:
            self.activate(None)
        else:
            self._sync_background()
        return True

    # Settings

    async def update_settings(self, new: SessionSettings | dict) -> SessionSettings | None:
        playlist = self.state.active
        if playlist is None:
            return None
        if isinstance(new, dict):
            try:
                new = playlist.settings.merged(new)
            except ValidationError as e:
                logger.warning("Rejected settings update for playlist %s: %s", playlist.id, e)
                return None
        if playlist.is_session_active and new.is_group_playlist:
            playlist.credits_remaining = reset_credits(new)
        playlist.settings = new
        if playlist.is_live:
            try:
                await self.store.update_settings(playlist.session_id, new.to_document())
            except StoreError as e:
                logger.warning("Saving settings for session %s failed: %s", playlist.session_id, e)
        self._sync_background()
        return new

    # Recommendations

    async def recommend(
        self,
        energy: int = 50,
        danceability: int = 50,
        popularity: int = 50,
        block_explicit: bool = False,
        blocked_artists: Iterable[str] = (),
    ) -> list[CatalogSongResponse]:
        try:
            results = await generate_recommendations(
                self.store, energy, danceability, popularity, block_explicit, blocked_artists
            )
        except StoreError as e:
            logger.warning("Recommendations failed: %s", e)
            self.notifier.push("Could not load recommendations. Please try again.")
            return []
        if not results:
            self.notifier.push("No recommendations found that respect the block settings.")
        return results

    async def queue_recommendation(self, row: CatalogSongResponse) -> QueuedSong | None:
        return await self.quick_add(song_from_catalog(row))

    async def save_recommendation(self, row: CatalogSongResponse) -> list[Song]:
        """Append a recommended song to the active playlist's library."""
        playlist = self.state.active
        if playlist is None:
            return []
        return await self.add_songs_to_playlist(playlist.id, [song_from_catalog(row)])
