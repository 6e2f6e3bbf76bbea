# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Catalog API - listing and recommendation query."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from groupie_server.api.schemas import CatalogSongResponse, RecommendRequest
from groupie_server.database import get_db
from groupie_server.services import catalog as catalog_service

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("", response_model=list[CatalogSongResponse])
async def list_catalog(db: AsyncSession = Depends(get_db)) -> list[CatalogSongResponse]:
    songs = await catalog_service.list_catalog(db)
    return [CatalogSongResponse.model_validate(s) for s in songs]


@router.post("/recommend", response_model=list[CatalogSongResponse])
async def recommend(
    data: RecommendRequest,
    db: AsyncSession = Depends(get_db),
) -> list[CatalogSongResponse]:
    """
    Songs inside +/- window of each given slider, with explicit/artist/tag
    filters, ordered by popularity descending.
    """
    songs = await catalog_service.recommend(
        db,
        energy=data.energy,
        danceability=data.danceability,
        popularity=data.popularity,
        block_explicit=data.block_explicit,
        blocked_artists=data.blocked_artists,
        include_tags=data.include_tags,
        limit=data.limit,
    )
    return [CatalogSongResponse.model_validate(s) for s in songs]
