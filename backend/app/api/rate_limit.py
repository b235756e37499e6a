"""
Rate Limiting

In-process sliding-window limiter keyed by client IP and route group.
Counters live in this process only; each instance limits independently.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional

from fastapi import HTTPException, Request, status

from app.config.settings import get_settings


logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """
    Allow at most `max_requests` per `window_seconds` for each key.

    Args:
        max_requests: Requests allowed inside one window
        window_seconds: Window length
        clock: Time source (seconds), injectable for tests
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.events: Dict[str, Deque[float]] = defaultdict(deque)

    def allow(self, key: str) -> bool:
        now = self.clock()
        window = self.events[key]

        # Drop events outside the window
        while window and now - window[0] >= self.window_seconds:
            window.popleft()

        if len(window) >= self.max_requests:
            return False

        window.append(now)
        return True

    def retry_after(self, key: str) -> int:
        """Seconds until the oldest event in the window expires."""
        window = self.events.get(key)
        if not window:
            return 0
        return max(1, int(self.window_seconds - (self.clock() - window[0])) + 1)

    def reset(self) -> None:
        self.events.clear()


_limiters: Dict[str, SlidingWindowLimiter] = {}


def get_limiter(group: str) -> SlidingWindowLimiter:
    """Limiter for a route group ("general", "checkout", "webhook")."""
    if group not in _limiters:
        settings = get_settings()
        limits = {
            "checkout": settings.rate_limit_checkout_requests,
            "webhook": settings.rate_limit_webhook_requests,
        }
        _limiters[group] = SlidingWindowLimiter(
            max_requests=limits.get(group, settings.rate_limit_requests),
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _limiters[group]


def reset_limiters() -> None:
    _limiters.clear()


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For when behind a proxy, else the peer address."""
    forwarded: Optional[str] = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def rate_limit(group: str = "general"):
    """
    Dependency factory enforcing the group's limit.

    Usage:
        @router.post("/checkout", dependencies=[Depends(rate_limit("checkout"))])
    """

    async def dependency(request: Request) -> None:
        limiter = get_limiter(group)
        key = f"{group}:{client_ip(request)}"
        if not limiter.allow(key):
            retry_after = limiter.retry_after(key)
            logger.warning(f"Rate limit exceeded for {key}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests",
                headers={"Retry-After": str(retry_after)},
            )

    return dependency
