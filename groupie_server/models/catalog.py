# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Catalog song model (search and recommendation source)."""

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from groupie_server.models.base import Base


class CatalogSong(Base):
    """Song available to add, with 0-100 audio feature scores."""

    __tablename__ = "catalog_songs"

    song_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    artist: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    album: Mapped[str | None] = mapped_column(String(255), nullable=True)
    album_art: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    energy: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    danceability: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    popularity: Mapped[int] = mapped_column(Integer, default=50, nullable=False, index=True)
    is_explicit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
