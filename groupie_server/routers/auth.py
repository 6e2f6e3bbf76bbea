# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Identity API routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from groupie_server.api.schemas import LoginRequest, LoginResponse, UserResponse
from groupie_server.auth import create_access_token
from groupie_server.database import get_db
from groupie_server.services.users import get_or_create_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)) -> LoginResponse:
    """Get or create the user for this email and hand back a token for it."""
    user = await get_or_create_user(db, data.email, data.display_name)
    await db.commit()
    token = create_access_token({"sub": user.id})
    return LoginResponse(user=UserResponse.model_validate(user), access_token=token)
