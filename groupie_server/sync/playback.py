# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Simulated playback. No audio: progress runs 0-100 over a fixed track duration."""

import asyncio
import logging
from collections.abc import Callable

from groupie_server.config import settings
from groupie_server.sync.types import LocalState, PlaybackState

logger = logging.getLogger(__name__)


class PlaybackTimer:
    def __init__(
        self,
        state: LocalState,
        on_complete: Callable[[], None],
        tick_seconds: float | None = None,
        duration_seconds: float | None = None,
        autorun: bool = True,
    ):
        self.state = state
        self.on_complete = on_complete
        self.tick_seconds = settings.playback_tick_seconds if tick_seconds is None else tick_seconds
        self.duration_seconds = (
            settings.song_duration_seconds if duration_seconds is None else duration_seconds
        )
        self.autorun = autorun
        ticks = max(1, round(self.duration_seconds / self.tick_seconds))
        self.step = 100 / ticks
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def play(self) -> bool:
        """Resume. Needs a current song."""
        if self.state.current_song is None:
            return False
        self.state.playback = PlaybackState.PLAYING
        self._ensure_task()
        return True

    def pause(self) -> None:
        self.state.playback = PlaybackState.STOPPED
        self._cancel()

    def stop(self) -> None:
        """Stop and rewind to the top of the queue."""
        self.pause()
        self.state.current_song_index = 0
        self.state.progress = 0.0

    def start_queue(self) -> None:
        self.state.current_song_index = 0
        self.state.progress = 0.0
        self.play()

    def advance(self) -> None:
        """Next track starts from zero, or stop when nothing is left."""
        self.state.progress = 0.0
        if self.state.current_song is None:
            self.stop()

    def tick(self) -> None:
        if not self.state.is_playing:
            return
        if self.state.current_song is None:
            self.stop()
            return
        self.state.progress = min(100.0, self.state.progress + self.step)
        if self.state.progress >= 100.0:
            logger.debug("Finished %s", self.state.current_song.id)
            self.on_complete()

    def _ensure_task(self) -> None:
        if self.autorun and not self.running:
            self._task = asyncio.create_task(self._run())

    def _cancel(self) -> None:
        if self._task and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self.state.is_playing and self._task is me:
            await asyncio.sleep(self.tick_seconds)
            if self._task is me:
                self.tick()
