# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Identity lookups."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from groupie_server.models import User


async def get_or_create_user(db: AsyncSession, email: str, display_name: str) -> User:
    """Return the user for this email, creating it on first login.

    The display name is only used on creation; later logins keep the stored one.
    """
    email = email.strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user:
        return user
    user = User(email=email, display_name=display_name.strip() or email)
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user
