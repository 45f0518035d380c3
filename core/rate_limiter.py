# core/rate_limiter.py

"""
In-memory sliding-window rate limiting, keyed by an identifier such as
`auth:<email>` or `ip:<address>`.

Identifiers whose window has emptied are dropped: on their next check, in a
periodic sweep, and whenever the store grows past `MAX_TRACKED_IDENTIFIERS`.
State is per process; a multi-worker deployment limits per worker.
"""

import time
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException, Request


MAX_TRACKED_IDENTIFIERS = 10_000
SWEEP_INTERVAL_SECONDS = 60


class _Window:
    __slots__ = ("seconds", "hits")

    def __init__(self, seconds: int):
        self.seconds = seconds
        self.hits: List[float] = []

    def prune(self, now: float) -> None:
        cutoff = now - self.seconds
        self.hits = [ts for ts in self.hits if ts > cutoff]


_windows: Dict[str, _Window] = {}
_last_sweep: float = 0.0


def _sweep(now: float) -> None:
    """Forget every identifier with no hits left inside its window."""
    global _last_sweep
    _last_sweep = now
    for identifier in list(_windows):
        window = _windows[identifier]
        window.prune(now)
        if not window.hits:
            del _windows[identifier]


def tracked_identifiers() -> int:
    return len(_windows)


def check_rate_limit(
    identifier: str,
    max_requests: int = 10,
    window_seconds: int = 60,
) -> Tuple[bool, int]:
    """
    Record one attempt for `identifier` unless it is over the limit.

    Returns (allowed, remaining). A refused attempt is not recorded, so a
    caller hammering a closed window does not extend it.
    """
    now = time.time()

    if now - _last_sweep >= SWEEP_INTERVAL_SECONDS or len(_windows) >= MAX_TRACKED_IDENTIFIERS:
        _sweep(now)

    window = _windows.get(identifier)
    if window is None:
        window = _windows[identifier] = _Window(window_seconds)
    else:
        window.seconds = window_seconds
        window.prune(now)

    if len(window.hits) >= max_requests:
        return False, 0

    window.hits.append(now)
    return True, max_requests - len(window.hits)


def reset_rate_limits(identifier: Optional[str] = None):
    """Forget recorded attempts for one identifier, or for all of them."""
    global _last_sweep
    if identifier is None:
        _windows.clear()
        _last_sweep = 0.0
    else:
        _windows.pop(identifier, None)


def get_rate_limit_identifier(request: Request, user_id: Optional[str] = None) -> str:
    """`user:<id>` when known, else `ip:<first X-Forwarded-For hop or peer>`."""
    if user_id:
        return f"user:{user_id}"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return f"ip:{forwarded_for.split(',')[0].strip()}"

    return f"ip:{request.client.host if request.client else 'unknown'}"


def require_rate_limit(
    request: Request,
    identifier: Optional[str] = None,
    max_requests: int = 10,
    window_seconds: int = 60
) -> int:
    """Raise 429 once `identifier` (default: caller IP) is over the limit; else return what is left."""
    allowed, remaining = check_rate_limit(
        identifier or get_rate_limit_identifier(request), max_requests, window_seconds
    )
    if allowed:
        return remaining

    raise HTTPException(
        status_code=429,
        detail=f"Too many requests. Try again in {window_seconds} seconds.",
        headers={
            "X-RateLimit-Limit": str(max_requests),
            "X-RateLimit-Window": str(window_seconds),
            "Retry-After": str(window_seconds),
        }
    )
