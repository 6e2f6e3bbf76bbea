# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Catalog query and client-side recommendation scoring."""

import pytest
from httpx import AsyncClient

from groupie_server.api.schemas import CatalogSongResponse
from groupie_server.models import CatalogSong
from groupie_server.services.catalog import slider_range
from groupie_server.sync.recommendations import score_recommendations, tags_for_sliders

CATALOG = [
    dict(song_id="c1", title="Calm", artist="Soft Currents", energy=20, danceability=30, popularity=20, is_explicit=False, tags=["chill", "indie"]),
    dict(song_id="c2", title="Rush", artist="Cardio Crew", energy=90, danceability=80, popularity=95, is_explicit=True, tags=["energetic", "dance"]),
    dict(song_id="c3", title="Middle", artist="Night Desk", energy=55, danceability=50, popularity=60, is_explicit=False, tags=[]),
    dict(song_id="c4", title="Drive", artist="Neon Roads", energy=80, danceability=70, popularity=70, is_explicit=False, tags=["energetic"]),
]


@pytest.fixture
async def seeded(session_maker):
    async with session_maker() as db:
        db.add_all([CatalogSong(**row) for row in CATALOG])
        await db.commit()


def test_slider_range_clamps():
    assert slider_range(None) is None
    assert slider_range(50, 15) == (35, 65)
    assert slider_range(5, 15) == (0, 20)
    assert slider_range(95, 15) == (80, 100)


@pytest.mark.anyio
async def test_list_catalog(client: AsyncClient, seeded):
    r = await client.get("/api/v1/catalog")
    assert r.status_code == 200
    assert [s["title"] for s in r.json()] == ["Calm", "Drive", "Middle", "Rush"]


@pytest.mark.anyio
async def test_recommend_query_filters(client: AsyncClient, seeded):
    r = await client.post("/api/v1/catalog/recommend", json={"energy": 85})
    assert [s["song_id"] for s in r.json()] == ["c2", "c4"]

    r = await client.post("/api/v1/catalog/recommend", json={"energy": 85, "block_explicit": True})
    assert [s["song_id"] for s in r.json()] == ["c4"]

    r = await client.post("/api/v1/catalog/recommend", json={"blocked_artists": ["Cardio Crew"], "limit": 2})
    assert [s["song_id"] for s in r.json()] == ["c4", "c3"]

    r = await client.post("/api/v1/catalog/recommend", json={"include_tags": ["energetic"]})
    assert [s["song_id"] for s in r.json()] == ["c2", "c4"]


@pytest.mark.anyio
async def test_recommend_rejects_out_of_range_slider(client: AsyncClient):
    r = await client.post("/api/v1/catalog/recommend", json={"energy": 150})
    assert r.status_code == 422


def pool() -> list[CatalogSongResponse]:
    return [CatalogSongResponse(**row) for row in CATALOG]


def test_score_ranks_by_distance():
    results = score_recommendations(pool(), energy=20, danceability=30, popularity=20)
    assert [s.song_id for s in results] == ["c1", "c3", "c4", "c2"]


def test_score_caps_results():
    assert len(score_recommendations(pool() * 3)) == 5


def test_score_blocks_artists_case_insensitively():
    results = score_recommendations(pool(), blocked_artists=["soft currents", " NIGHT DESK "])
    assert {s.song_id for s in results} == {"c2", "c4"}


def test_score_blocks_explicit_and_can_come_back_empty():
    results = score_recommendations(pool(), block_explicit=True)
    assert "c2" not in {s.song_id for s in results}

    assert score_recommendations(pool(), blocked_artists=[row["artist"] for row in CATALOG]) == []


@pytest.mark.parametrize(
    "sliders, expected",
    [
        ((80, 80, 80), ["energetic", "dance"]),
        ((20, 20, 20), ["chill", "acoustic", "indie"]),
        ((50, 50, 50), []),
    ],
)
def test_tags_for_sliders(sliders, expected):
    assert tags_for_sliders(*sliders) == expected
