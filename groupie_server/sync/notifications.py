# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Toast notifications, the session start/join banner, and id-keyed deduplication."""

import itertools
import logging
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Literal

from groupie_server.config import settings

logger = logging.getLogger(__name__)

Kind = Literal["info", "success", "vote"]
NoticeKind = Literal["started", "joined", "created"]


@dataclass(frozen=True)
class Notification:
    id: str
    message: str
    kind: Kind
    expires_at: float


@dataclass(frozen=True)
class SessionNotice:
    """Banner shown after starting, joining or creating. Undo works while it is open."""
    id: str
    session_code: str
    playlist_name: str
    kind: NoticeKind
    expires_at: float

    def is_open(self, now: float) -> bool:
        return now < self.expires_at


class Notifier:
    """Auto-expiring notifications. Expiry is evaluated lazily against ``clock``."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        default_seconds: float | None = None,
        notice_seconds: float | None = None,
    ):
        self._clock = clock
        self._default_seconds = (
            settings.notification_seconds if default_seconds is None else default_seconds
        )
        self._notice_seconds = (
            settings.session_notice_seconds if notice_seconds is None else notice_seconds
        )
        self._ids = itertools.count(1)
        self._items: list[Notification] = []
        self._notice: SessionNotice | None = None
        self._subscribers: list[Callable[[Notification], None]] = []

    def subscribe(self, callback: Callable[[Notification], None]) -> None:
        self._subscribers.append(callback)

    def push(self, message: str, kind: Kind = "info", seconds: float | None = None) -> Notification:
        ttl = self._default_seconds if seconds is None else seconds
        item = Notification(
            id=str(next(self._ids)),
            message=message,
            kind=kind,
            expires_at=self._clock() + ttl,
        )
        self._items.append(item)
        logger.debug("notify[%s] %s", kind, message)
        for callback in self._subscribers:
            try:
                callback(item)
            except Exception:
                logger.exception("Notification subscriber failed")
        return item

    def active(self) -> list[Notification]:
        now = self._clock()
        self._items = [n for n in self._items if n.expires_at > now]
        return list(self._items)

    def messages(self) -> list[str]:
        return [n.message for n in self.active()]

    def dismiss(self, notification_id: str) -> None:
        self._items = [n for n in self._items if n.id != notification_id]

    def open_session_notice(
        self, session_code: str, playlist_name: str, kind: NoticeKind
    ) -> SessionNotice:
        self._notice = SessionNotice(
            id=str(next(self._ids)),
            session_code=session_code,
            playlist_name=playlist_name,
            kind=kind,
            expires_at=self._clock() + self._notice_seconds,
        )
        return self._notice

    @property
    def session_notice(self) -> SessionNotice | None:
        if self._notice and not self._notice.is_open(self._clock()):
            self._notice = None
        return self._notice

    def close_session_notice(self) -> None:
        self._notice = None


class NotificationDeduplicator:
    """Keys that already surfaced a notification during this session view."""

    def __init__(self):
        self._seen: set[Hashable] = set()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def seen(self, key: Hashable) -> bool:
        return key in self._seen

    def mark(self, key: Hashable) -> None:
        self._seen.add(key)

    def first_sighting(self, key: Hashable) -> bool:
        """True exactly once per key."""
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def reset(self) -> None:
        self._seen.clear()
