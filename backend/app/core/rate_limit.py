"""
In-memory sliding window rate limiting

Each key keeps the timestamps of its recent attempts; an attempt is allowed
while fewer than ``max_attempts`` fall inside the last ``window_seconds``.
State is per process; a multi-instance deployment needs a shared store.
"""
import math
import threading
import time
from typing import Callable, Dict, List, Optional

from fastapi import Request

from app.core.config import get_settings


class SlidingWindowRateLimiter:
    """Per-key sliding window limiter"""

    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        cleanup_interval_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._clock = clock
        self._attempts: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def _recent(self, key: str, now: float) -> List[float]:
        cutoff = now - self.window_seconds
        return [ts for ts in self._attempts.get(key, ()) if ts > cutoff]

    def _maybe_cleanup(self, now: float):
        if now - self._last_cleanup < self.cleanup_interval_seconds:
            return
        cutoff = now - self.window_seconds
        for key in list(self._attempts):
            recent = [ts for ts in self._attempts[key] if ts > cutoff]
            if recent:
                self._attempts[key] = recent
            else:
                del self._attempts[key]
        self._last_cleanup = now

    def check_limit(self, key: str) -> bool:
        """True while ``key`` is under its limit"""
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            return len(self._recent(key, now)) < self.max_attempts

    def record_attempt(self, key: str):
        with self._lock:
            now = self._clock()
            recent = self._recent(key, now)
            recent.append(now)
            self._attempts[key] = recent

    def remaining_attempts(self, key: str) -> int:
        with self._lock:
            return max(0, self.max_attempts - len(self._recent(key, self._clock())))

    def time_until_reset(self, key: str) -> float:
        """Seconds until the oldest attempt in the window expires (0 if none)"""
        with self._lock:
            now = self._clock()
            recent = self._recent(key, now)
            if not recent:
                return 0.0
            return max(0.0, recent[0] + self.window_seconds - now)

    def reset(self, key: Optional[str] = None):
        with self._lock:
            if key is None:
                self._attempts.clear()
            else:
                self._attempts.pop(key, None)


def get_client_ip(request: Request) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the peer"""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


_public_api_limiter: Optional[SlidingWindowRateLimiter] = None


def get_public_api_limiter() -> SlidingWindowRateLimiter:
    """Process-wide limiter for the public read API"""
    global _public_api_limiter
    if _public_api_limiter is None:
        settings = get_settings()
        _public_api_limiter = SlidingWindowRateLimiter(
            max_attempts=settings.public_api_rate_limit,
            window_seconds=settings.public_api_rate_window_seconds,
        )
    return _public_api_limiter


def retry_after_seconds(limiter: SlidingWindowRateLimiter, key: str) -> int:
    return math.ceil(limiter.time_until_reset(key))
