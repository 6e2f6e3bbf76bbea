# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Slider-driven recommendations.

The store query pulls a wide pool; scoring by distance to the sliders
happens here so explicit and artist blocks do not shrink the pool first.
"""

import logging
from collections.abc import Iterable

from groupie_server.api.schemas import CatalogSongResponse, RecommendRequest
from groupie_server.sync.store import RemoteStore

logger = logging.getLogger(__name__)

POOL_SIZE = 400
MAX_RESULTS = 5


def tags_for_sliders(energy: int, danceability: int, popularity: int) -> list[str]:
    tags = []
    if energy > 65:
        tags.append("energetic")
    if energy < 35:
        tags.append("chill")
    if danceability > 65:
        tags.append("dance")
    if danceability < 35:
        tags.append("acoustic")
    if popularity < 35:
        tags.append("indie")
    return tags


def score_recommendations(
    pool: Iterable[CatalogSongResponse],
    energy: int = 50,
    danceability: int = 50,
    popularity: int = 50,
    block_explicit: bool = False,
    blocked_artists: Iterable[str] = (),
    limit: int = MAX_RESULTS,
) -> list[CatalogSongResponse]:
    """Closest songs by L1 distance over the three sliders. Ties keep pool order."""
    blocked = {a.strip().lower() for a in blocked_artists if a and a.strip()}
    survivors = [
        song for song in pool
        if song.artist.lower() not in blocked and not (block_explicit and song.is_explicit)
    ]
    if not survivors:
        return []
    ranked = sorted(
        survivors,
        key=lambda s: (
            abs(s.energy - energy)
            + abs(s.danceability - danceability)
            + abs(s.popularity - popularity)
        ),
    )
    return ranked[:max(1, limit)]


async def generate_recommendations(
    store: RemoteStore,
    energy: int = 50,
    danceability: int = 50,
    popularity: int = 50,
    block_explicit: bool = False,
    blocked_artists: Iterable[str] = (),
) -> list[CatalogSongResponse]:
    pool = await store.recommend(RecommendRequest(limit=POOL_SIZE))
    results = score_recommendations(
        pool, energy, danceability, popularity, block_explicit, blocked_artists
    )
    logger.debug("Scored %d of %d catalog songs", len(results), len(pool))
    return results
