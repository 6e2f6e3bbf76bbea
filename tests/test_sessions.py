# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Session, participant and queue endpoint tests."""

import pytest
from httpx import AsyncClient

from groupie_server import rate_limit

pytestmark = pytest.mark.anyio


def song(song_id: str) -> dict:
    return {"id": song_id, "title": f"Title {song_id}", "artist": "Band"}


@pytest.fixture
async def playlist(client: AsyncClient) -> dict:
    r = await client.post("/api/v1/auth/login", json={"email": "host@example.com", "display_name": "Host"})
    headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
    r = await client.post("/api/v1/playlists", json={"name": "Road Trip"}, headers=headers)
    return r.json()


@pytest.fixture
async def session(client: AsyncClient, playlist: dict) -> dict:
    r = await client.post(
        "/api/v1/sessions",
        json={"playlist_id": playlist["id"], "code": "abcde", "settings": {"isPrivateSession": False}},
    )
    assert r.status_code == 200
    return r.json()


async def test_create_session(session: dict, playlist: dict):
    assert session["code"] == "ABCDE"
    assert session["is_active"] is True
    assert session["playlist_name"] == "Road Trip"
    assert session["settings"] == {"isPrivateSession": False}


async def test_create_session_unknown_playlist(client: AsyncClient):
    r = await client.post("/api/v1/sessions", json={"playlist_id": "missing", "code": "ABCDE"})
    assert r.status_code == 404


async def test_lookup_by_code_is_case_insensitive(client: AsyncClient, session: dict):
    r = await client.get("/api/v1/sessions/by-code/abcde")
    assert r.status_code == 200
    assert r.json()["id"] == session["id"]

    r = await client.get("/api/v1/sessions/by-code/ZZZZZ")
    assert r.status_code == 404
    assert r.json()["detail"] == "Session not found or inactive"


async def test_code_lookup_rate_limited(client: AsyncClient, session: dict):
    for _ in range(rate_limit.LIMIT):
        r = await client.get("/api/v1/sessions/by-code/ZZZZZ")
        assert r.status_code == 404
    r = await client.get("/api/v1/sessions/by-code/ABCDE")
    assert r.status_code == 429


async def test_settings_round_trip(client: AsyncClient, session: dict):
    doc = {"isGroupPlaylist": True, "queuesPerHour": "2", "unlimitedQueuing": False}
    r = await client.put(f"/api/v1/sessions/{session['id']}/settings", json=doc)
    assert r.status_code == 200
    r = await client.get(f"/api/v1/sessions/{session['id']}/settings")
    assert r.json() == {"settings": doc}

    r = await client.get("/api/v1/sessions/missing/settings")
    assert r.status_code == 404
    r = await client.put("/api/v1/sessions/missing/settings", json=doc)
    assert r.status_code == 404


async def test_participants(client: AsyncClient, session: dict):
    base = f"/api/v1/sessions/{session['id']}/participants"
    host = (await client.post(base, json={"name": "You", "role": "host"})).json()
    kim = (await client.post(base, json={"name": "Kim", "role": "guest"})).json()
    assert kim["role"] == "guest"

    r = await client.post(base, json={"name": "Eve", "role": "admin"})
    assert r.status_code == 422

    await client.delete(f"{base}/{kim['id']}")
    r = await client.get(base)
    assert [p["id"] for p in r.json()] == [host["id"]]


async def test_queue_positions_and_removal(client: AsyncClient, session: dict):
    base = f"/api/v1/sessions/{session['id']}/queue"
    for song_id in ("s1", "s2", "s1", "s3"):
        r = await client.post(
            base, json={"song": song(song_id), "queued_by_name": "Kim", "queued_by_type": "guest"}
        )
        assert r.status_code == 200

    r = await client.get(base)
    rows = r.json()
    assert [(q["song_id"], q["position"]) for q in rows] == [("s1", 0), ("s2", 1), ("s1", 2), ("s3", 3)]
    assert rows[0]["queued_by_name"] == "Kim"

    # Removal keys on song id: every copy goes
    r = await client.delete(f"{base}/songs/s1")
    assert r.json() == {"status": "ok", "removed": 2}
    r = await client.get(base)
    assert [q["song_id"] for q in r.json()] == ["s2", "s3"]

    await client.post(base, json={"song": song("s4"), "queued_by_name": "You", "queued_by_type": "host"})
    assert [q["position"] for q in (await client.get(base)).json()] == [1, 3, 4]

    await client.delete(base)
    assert (await client.get(base)).json() == []


async def test_queue_add_unknown_session(client: AsyncClient):
    r = await client.post(
        "/api/v1/sessions/missing/queue",
        json={"song": song("s1"), "queued_by_name": "Kim", "queued_by_type": "guest"},
    )
    assert r.status_code == 404


async def test_invalid_settings_rejected(client: AsyncClient, session: dict, playlist: dict):
    r = await client.put(
        f"/api/v1/sessions/{session['id']}/settings",
        json={"autoplayMode": "shuffle", "queuesPerHour": None},
    )
    assert r.status_code == 422
    r = await client.get(f"/api/v1/sessions/{session['id']}/settings")
    assert r.json() == {"settings": {"isPrivateSession": False}}

    r = await client.post(
        "/api/v1/sessions",
        json={"playlist_id": playlist["id"], "code": "fghij", "settings": {"isGroupPlaylist": "maybe"}},
    )
    assert r.status_code == 422


async def test_settings_accept_snake_case_and_numbers(client: AsyncClient, session: dict):
    r = await client.put(f"/api/v1/sessions/{session['id']}/settings", json={"queues_per_hour": 4})
    assert r.status_code == 200
    r = await client.get(f"/api/v1/sessions/{session['id']}/settings")
    assert r.json() == {"settings": {"queuesPerHour": "4"}}
