# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Catalog queries: plain listing and slider-window recommendations."""

import logging

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from groupie_server.config import settings
from groupie_server.models import CatalogSong

logger = logging.getLogger(__name__)


def slider_range(value: int | None, window: int | None = None) -> tuple[int, int] | None:
    """Window of +/- ``window`` points around a slider value, clamped to 0-100."""
    if value is None:
        return None
    w = settings.recommend_window if window is None else window
    return max(0, value - w), min(100, value + w)


async def list_catalog(db: AsyncSession) -> list[CatalogSong]:
    result = await db.execute(select(CatalogSong).order_by(CatalogSong.title))
    return list(result.scalars().all())


async def recommend(
    db: AsyncSession,
    energy: int | None = None,
    danceability: int | None = None,
    popularity: int | None = None,
    block_explicit: bool = False,
    blocked_artists: list[str] | None = None,
    include_tags: list[str] | None = None,
    limit: int = 25,
) -> list[CatalogSong]:
    """Catalog songs inside the slider windows, most popular first."""
    q = select(CatalogSong)
    for column, value in (
        (CatalogSong.energy, energy),
        (CatalogSong.danceability, danceability),
        (CatalogSong.popularity, popularity),
    ):
        bounds = slider_range(value)
        if bounds:
            q = q.where(column >= bounds[0], column <= bounds[1])
    if block_explicit:
        q = q.where(CatalogSong.is_explicit.is_(False))
    blocked = [a for a in (blocked_artists or []) if a]
    if blocked:
        q = q.where(CatalogSong.artist.not_in(blocked))
    q = q.order_by(desc(CatalogSong.popularity))

    wanted = set(include_tags or [])
    if not wanted:
        result = await db.execute(q.limit(limit))
        return list(result.scalars().all())

    # JSON containment is not portable across backends; filter tags here
    result = await db.execute(q)
    out = []
    for song in result.scalars().all():
        if wanted.issubset(set(song.tags or [])):
            out.append(song)
            if len(out) >= limit:
                break
    return out
