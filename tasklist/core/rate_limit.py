import threading

from cachetools import TTLCache
from fastapi import Request

from tasklist.core.errors import RateLimited


class RateLimiter:
    """
    Fixed-window request counter keyed by client address.

    Each key maps to (window_start, count) in a TTLCache, so idle clients are
    evicted without a sweep.
    """

    def __init__(self, limit: int, window_seconds: int, code: str, maxsize: int = 10_000):
        self.limit = limit
        self.window_seconds = window_seconds
        self.code = code
        self._hits = TTLCache(maxsize=maxsize, ttl=window_seconds)
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        with self._lock:
            now = self._hits.timer()
            start, count = self._hits.get(key, (now, 0))
            # writing a key restarts its TTL, so the window start is tracked here
            if now - start >= self.window_seconds:
                start, count = now, 0
            if count >= self.limit:
                return False
            self._hits[key] = (start, count + 1)
            return True

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def rate_limit(name: str):
    """Build a dependency enforcing the limiter stored as `app.state.rate_limiters[name]`."""

    def dependency(request: Request) -> None:
        settings = request.app.state.settings
        if not settings.rate_limit_enabled:
            return
        limiter: RateLimiter = request.app.state.rate_limiters[name]
        if not limiter.allow(client_key(request)):
            raise RateLimited(limiter.code, f"{name} limit hit by {client_key(request)}")

    return dependency
