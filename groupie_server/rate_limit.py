# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory rate limiting for session code lookups (code guessing protection)."""

import time
from collections import defaultdict

from fastapi import HTTPException, Request

# client_key -> list of lookup timestamps in window
_buckets: defaultdict[str, list[float]] = defaultdict(list)
# Window seconds; max code lookups per window per client
WINDOW = 60
LIMIT = 30


def _client_key(request: Request) -> str:
    """Prefer X-Forwarded-For when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host or "unknown"
    return "unknown"


def _clean_old(bucket: list[float], now: float) -> None:
    cutoff = now - WINDOW
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)


def check_rate_limit(request: Request) -> None:
    """Raise 429 if the client has looked up too many session codes recently."""
    now = time.monotonic()
    bucket = _buckets[_client_key(request)]
    _clean_old(bucket, now)
    if len(bucket) >= LIMIT:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
        )
    bucket.append(now)


async def rate_limit_code_lookup(request: Request) -> None:
    """FastAPI dependency for the session-by-code route."""
    check_rate_limit(request)


def reset() -> None:
    """Forget all buckets (tests)."""
    _buckets.clear()
