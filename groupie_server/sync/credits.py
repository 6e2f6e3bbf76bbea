# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Queue credit policy.

Credits are derived locally and never stored remotely. ``None`` means
unlimited. They are clamped down when the host lowers the hourly limit but
never topped back up by a poll; only a settings edit resets them.
"""

import re

from groupie_server.api.schemas import SessionSettings
from groupie_server.sync.types import PlaylistState

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: str | int | None) -> int:
    """Leading integer of a string-encoded number, 0 when there is none."""
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(value or "")
    return int(match.group(1)) if match else 0


def credit_limit(settings: SessionSettings) -> int:
    return max(0, parse_int(settings.queues_per_hour))


def reconcile_credits(settings: SessionSettings, prior: int | None) -> int | None:
    """Credits after a poll delivered ``settings``."""
    if settings.unlimited_queuing:
        return None
    limit = credit_limit(settings)
    current = limit if prior is None else prior
    return max(0, min(current, limit))


def reset_credits(settings: SessionSettings) -> int | None:
    """Credits after the host edits settings: a full allowance."""
    if settings.unlimited_queuing:
        return None
    return credit_limit(settings)


def initial_credits(settings: SessionSettings) -> int | None:
    """Credits on joining. A zero limit starts untracked and is set on the first poll."""
    if settings.unlimited_queuing:
        return None
    return credit_limit(settings) or None


def credits_enforced(playlist: PlaylistState) -> bool:
    return (
        playlist.has_joined_session
        and playlist.settings.is_group_playlist
        and not playlist.settings.unlimited_queuing
    )


def available_credits(playlist: PlaylistState) -> int | None:
    """How many songs may be queued right now; None when credits are not enforced."""
    if not credits_enforced(playlist):
        return None
    if playlist.credits_remaining is None:
        return credit_limit(playlist.settings)
    return max(0, playlist.credits_remaining)


def consume_credits(available: int, admitted: int) -> int:
    return max(0, available - admitted)
