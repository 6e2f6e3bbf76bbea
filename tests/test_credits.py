# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Queue credit policy."""

import pytest

from groupie_server.api.schemas import SessionSettings
from groupie_server.sync.credits import (
    available_credits,
    consume_credits,
    credit_limit,
    credits_enforced,
    initial_credits,
    parse_int,
    reconcile_credits,
    reset_credits,
)
from groupie_server.sync.types import PlaylistState


def limited(per_hour: str) -> SessionSettings:
    return SessionSettings(unlimited_queuing=False, queues_per_hour=per_hour)


@pytest.mark.parametrize(
    "raw, expected",
    [("3", 3), (" 12 ", 12), ("3/h", 3), ("abc", 0), ("", 0), (None, 0), (7, 7), ("-2", -2)],
)
def test_parse_int(raw, expected):
    assert parse_int(raw) == expected


def test_credit_limit_never_negative():
    assert credit_limit(limited("-2")) == 0
    assert credit_limit(limited("nope")) == 0


def test_unlimited_is_untracked():
    unlimited = SessionSettings(unlimited_queuing=True, queues_per_hour="3")
    assert reconcile_credits(unlimited, 2) is None
    assert reset_credits(unlimited) is None
    assert initial_credits(unlimited) is None


def test_reconcile_initialises_to_limit():
    assert reconcile_credits(limited("3"), None) == 3


def test_reconcile_clamps_down_but_never_tops_up():
    assert reconcile_credits(limited("2"), 3) == 2
    assert reconcile_credits(limited("5"), 1) == 1
    assert reconcile_credits(limited("0"), 1) == 0


def test_reset_gives_full_allowance():
    assert reset_credits(limited("4")) == 4


def test_initial_credits_zero_limit_is_untracked():
    assert initial_credits(limited("3")) == 3
    assert initial_credits(limited("0")) is None


def test_consume_floors_at_zero():
    assert consume_credits(3, 2) == 1
    assert consume_credits(1, 5) == 0


def test_enforced_only_for_joined_group_sessions():
    playlist = PlaylistState(id="p", name="P", settings=limited("3"))
    assert not credits_enforced(playlist)
    assert available_credits(playlist) is None

    playlist.has_joined_session = True
    assert credits_enforced(playlist)
    assert available_credits(playlist) == 3

    playlist.credits_remaining = 1
    assert available_credits(playlist) == 1

    playlist.settings = SessionSettings(is_group_playlist=False, unlimited_queuing=False)
    assert not credits_enforced(playlist)
