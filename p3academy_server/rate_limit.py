# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory rate limiting for auth endpoints (brute-force protection)."""

import time
from collections import defaultdict

from fastapi import HTTPException, Request, status

from p3academy_server.config import settings

# (client_key, endpoint) -> list of request timestamps in window
_buckets: defaultdict[tuple[str, str], list[float]] = defaultdict(list)
# path -> (max requests, window seconds) per client
LIMITS: dict[str, tuple[int, int]] = {
    "/api/auth/login": (5, 15 * 60),
    "/api/auth/register": (5, 15 * 60),
    "/api/auth/forgot-password": (3, 60 * 60),
    "/api/auth/reset-password": (5, 15 * 60),
    "/api/auth/change-password": (3, 15 * 60),
}
# Seconds between passes that delete idle buckets
SWEEP_INTERVAL = 60
_last_sweep = 0.0


def _client_key(request: Request) -> str:
    """Peer address. X-Forwarded-For is honoured only with TRUST_FORWARDED_FOR set."""
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host or "unknown"
    return "unknown"


def _clean_old(bucket: list[float], now: float, window: int) -> None:
    cutoff = now - window
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)


def _sweep(now: float) -> None:
    """Drop buckets whose entries have all left their window."""
    global _last_sweep
    if now - _last_sweep < SWEEP_INTERVAL:
        return
    _last_sweep = now
    for key in list(_buckets):
        _, path = key
        window = LIMITS.get(path, (0, 0))[1]
        _clean_old(_buckets[key], now, window)
        if not _buckets[key]:
            del _buckets[key]


def check_rate_limit(request: Request, path: str) -> None:
    """Raise 429 if the client has exceeded the limit for this path."""
    limit = LIMITS.get(path)
    if limit is None:
        return
    max_requests, window = limit
    now = time.monotonic()
    _sweep(now)
    key = (_client_key(request), path)
    bucket = _buckets[key]
    _clean_old(bucket, now, window)
    if len(bucket) >= max_requests:
        retry_after = int(window - (now - bucket[0])) + 1
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many attempts. Please try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )
    bucket.append(now)


def reset_limits() -> None:
    global _last_sweep
    _buckets.clear()
    _last_sweep = 0.0


async def rate_limit_auth_dep(request: Request) -> None:
    """FastAPI dependency: rate limit auth endpoints. Add Depends(rate_limit_auth_dep) to routes."""
    if not settings.rate_limit_enabled:
        return
    path = request.url.path.rstrip("/")
    if path in LIMITS:
        check_rate_limit(request, path)
