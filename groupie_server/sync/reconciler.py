# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Session reconciliation loop.

Polls the remote store for the session being viewed and merges the result
into local state. The queue is kept in two layers: the confirmed layer is
whatever the last poll returned, the optimistic overlay holds local appends
the store has not shown yet. Local removals are tracked until the store
agrees with them, and a removal the store still shows is retried a bounded
number of times before the remote row wins again.
"""

import asyncio
import logging
from dataclasses import dataclass

from pydantic import ValidationError

from groupie_server.config import settings
from groupie_server.sync.credits import reconcile_credits
from groupie_server.sync.notifications import NotificationDeduplicator, Notifier
from groupie_server.sync.store import RemoteStore, StoreError
from groupie_server.sync.types import (
    LocalState,
    Participant,
    PlaylistState,
    QueuedSong,
    participant_from_row,
    queued_song_from_row,
    song_from_row,
)

logger = logging.getLogger(__name__)


@dataclass
class _Overlay:
    entry: QueuedSong
    # Poll sequence number current when the remote append finished
    settled_at: int | None = None


@dataclass
class _PendingRemoval:
    session_id: str
    attempts: int = 0
    in_flight: bool = False
    ok: bool | None = None
    resolved_at: int | None = None


class SessionReconciler:
    """Keeps one bound session in sync. Rebinding to another session starts fresh."""

    def __init__(
        self,
        state: LocalState,
        store: RemoteStore,
        notifier: Notifier,
        interval: float | None = None,
        autorun: bool = True,
        retry_limit: int | None = None,
    ):
        self.state = state
        self.store = store
        self.notifier = notifier
        self.interval = settings.poll_interval_seconds if interval is None else interval
        self.autorun = autorun
        self.retry_limit = settings.removal_retry_limit if retry_limit is None else retry_limit

        self.queue_notified = NotificationDeduplicator()
        self.participants_notified = NotificationDeduplicator()
        self._participant_cache: dict[str, set[str]] = {}
        self._overlay: dict[str, _Overlay] = {}
        self._removals: dict[str, _PendingRemoval] = {}
        self._retries: set[asyncio.Task] = set()

        self._key: tuple[str, str] | None = None
        self._generation = 0
        self._poll_seq = 0
        self._task: asyncio.Task | None = None

    @property
    def key(self) -> tuple[str, str] | None:
        """(playlist_id, session_id) currently bound, or None."""
        return self._key

    def bind(self, playlist_id: str, session_id: str) -> None:
        key = (playlist_id, session_id)
        if key == self._key:
            return
        self.unbind()
        self._key = key
        logger.info("Reconciling session %s for playlist %s", session_id, playlist_id)
        if self.autorun:
            self._task = asyncio.create_task(self._run(self._generation))

    def unbind(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None
        for task in self._retries:
            task.cancel()
        self._retries.clear()
        # In-flight ticks compare against this before committing
        self._generation += 1
        self._key = None
        self._reset()

    def _reset(self) -> None:
        self.queue_notified.reset()
        self.participants_notified.reset()
        self._participant_cache.clear()
        self._overlay.clear()
        self._removals.clear()

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Session poll failed")
            await asyncio.sleep(self.interval)

    # Optimistic overlay

    def track_optimistic(self, entry: QueuedSong) -> None:
        if self._key:
            self._overlay[entry.id] = _Overlay(entry)

    def settle_optimistic(self, song_id: str) -> None:
        """The remote append for ``song_id`` finished, successfully or not."""
        overlay = self._overlay.get(song_id)
        if overlay:
            overlay.settled_at = self._poll_seq

    @property
    def pending_overlay(self) -> list[str]:
        return list(self._overlay)

    # Removal tracking

    def track_removal(self, session_id: str, song_id: str, in_flight: bool = True) -> None:
        if not self._key or self._key[1] != session_id:
            return
        self._overlay.pop(song_id, None)
        pending = self._removals.setdefault(song_id, _PendingRemoval(session_id))
        pending.ok = None
        pending.resolved_at = None
        pending.in_flight = in_flight
        if in_flight:
            pending.attempts += 1

    def removal_finished(self, song_id: str, ok: bool) -> None:
        pending = self._removals.get(song_id)
        if not pending:
            return
        pending.in_flight = False
        pending.ok = ok
        pending.resolved_at = self._poll_seq

    @property
    def pending_removals(self) -> dict[str, int]:
        """Song id -> attempts made so far."""
        return {song_id: p.attempts for song_id, p in self._removals.items()}

    def forget_participant(self, session_id: str, participant_id: str) -> None:
        seen = self._participant_cache.get(session_id)
        if seen:
            seen.discard(participant_id)

    # Polling

    async def tick(self) -> bool:
        """One poll cycle. Returns True when the merge was committed."""
        if not self._key:
            return False
        playlist_id, session_id = self._key
        generation = self._generation
        self._poll_seq += 1
        seq = self._poll_seq

        try:
            queue_rows, participant_rows, song_rows, remote_settings = await asyncio.gather(
                self.store.list_queue(session_id),
                self.store.list_participants(session_id),
                self.store.list_songs(playlist_id),
                self.store.fetch_settings(session_id),
            )
        except StoreError as e:
            logger.warning("Poll of session %s failed: %s", session_id, e)
            return False

        if generation != self._generation:
            logger.debug("Discarding poll for unbound session %s", session_id)
            return False
        playlist = self.state.playlists.get(playlist_id)
        if playlist is None:
            return False

        confirmed = [queued_song_from_row(r) for r in queue_rows]
        participants = [participant_from_row(r) for r in participant_rows]
        songs = [song_from_row(r) for r in song_rows]

        previous = self._participant_cache.get(session_id, set())
        joined = [p for p in participants if p.id not in previous]
        self._participant_cache[session_id] = {p.id for p in participants}

        visible = self._merge_removals(session_id, confirmed, seq)
        queue = self._merge_overlay(visible, seq)

        for entry in visible:
            if self.queue_notified.first_sighting(entry.id):
                self.notifier.push(
                    f'Queued "{entry.title}" by {entry.artist} (by {entry.queued_by.name or "Someone"})'
                )

        try:
            next_settings = playlist.settings.merged(remote_settings)
        except ValidationError as e:
            logger.warning("Ignoring invalid settings for session %s: %s", session_id, e)
            next_settings = playlist.settings
        credits = playlist.credits_remaining
        if playlist.has_joined_session and next_settings.is_group_playlist:
            credits = reconcile_credits(next_settings, credits)

        self._commit(playlist, queue, participants, songs, next_settings, credits)
        self._announce(joined)
        return True

    def _merge_removals(self, session_id: str, confirmed: list[QueuedSong], seq: int) -> list[QueuedSong]:
        observed = {entry.id for entry in confirmed}
        for song_id in [s for s in self._removals if s not in observed]:
            pending = self._removals[song_id]
            if not pending.in_flight:
                del self._removals[song_id]

        visible = []
        for entry in confirmed:
            pending = self._removals.get(entry.id)
            if pending is None:
                visible.append(entry)
                continue
            if pending.in_flight:
                continue
            if pending.resolved_at is not None and seq <= pending.resolved_at:
                # Poll started before the delete landed
                continue
            if pending.ok:
                # Store accepted the delete and a later poll still shows the
                # song: somebody queued it again
                del self._removals[entry.id]
                visible.append(entry)
                continue
            if pending.attempts < self.retry_limit:
                self._retry_removal(session_id, entry.id)
                continue
            logger.warning(
                "Giving up removing %s from session %s after %d attempts",
                entry.id, session_id, pending.attempts,
            )
            del self._removals[entry.id]
            visible.append(entry)
        return visible

    def _merge_overlay(self, visible: list[QueuedSong], seq: int) -> list[QueuedSong]:
        observed = {entry.id for entry in visible}
        for song_id, overlay in list(self._overlay.items()):
            if song_id in observed:
                del self._overlay[song_id]
            elif overlay.settled_at is not None and seq > overlay.settled_at:
                logger.debug("Dropping unconfirmed local entry %s", song_id)
                del self._overlay[song_id]
        return visible + [o.entry for o in self._overlay.values()]

    def _retry_removal(self, session_id: str, song_id: str) -> None:
        self.track_removal(session_id, song_id, in_flight=True)
        logger.info("Retrying removal of %s from session %s", song_id, session_id)
        task = asyncio.create_task(self._remove(session_id, song_id))
        self._retries.add(task)
        task.add_done_callback(self._retries.discard)

    async def _remove(self, session_id: str, song_id: str) -> None:
        try:
            await self.store.remove_from_queue(session_id, song_id)
        except StoreError as e:
            logger.warning("Removing %s from session %s failed: %s", song_id, session_id, e)
            self.removal_finished(song_id, False)
        else:
            self.removal_finished(song_id, True)

    async def drain(self) -> None:
        while self._retries:
            await asyncio.gather(*list(self._retries), return_exceptions=True)

    def _commit(
        self,
        playlist: PlaylistState,
        queue: list[QueuedSong],
        participants: list[Participant],
        songs,
        next_settings,
        credits: int | None,
    ) -> None:
        playlist.queue = queue
        playlist.participants = participants
        playlist.songs = songs
        playlist.settings = next_settings
        playlist.credits_remaining = credits
        if self.state.active_playlist_id == playlist.id:
            self.state.clamp_index()

    def _announce(self, joined: list[Participant]) -> None:
        for participant in joined:
            if self.participants_notified.first_sighting(participant.id):
                self.notifier.push(
                    f"{participant.name} joined the session",
                    seconds=settings.join_notification_seconds,
                )
