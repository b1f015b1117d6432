from __future__ import annotations
import threading
import time
from typing import Callable, Dict, Tuple
from fastapi import HTTPException, Request

# Fixed-window limiter keyed by (client ip, route). Process-local.


def get_client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    def __init__(self, limit: int = 30, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key: (ip, route) -> (window_start, count)
        self._buckets: Dict[Tuple[str, str], Tuple[float, int]] = {}
        self._last_prune = clock()

    def __len__(self) -> int:
        return len(self._buckets)

    def _prune(self, now: float) -> None:
        # Caller holds the lock. At most one sweep per window.
        if now - self._last_prune < self.window_seconds:
            return
        self._last_prune = now
        expired = [k for k, (start, _) in self._buckets.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._buckets[key]

    def hit(self, key: Tuple[str, str]) -> float:
        """Count one request. Returns 0 when allowed, else seconds until the window resets."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            window_start, count = self._buckets.get(key, (now, 0))
            if now - window_start >= self.window_seconds:
                window_start, count = now, 0
            count += 1
            self._buckets[key] = (window_start, count)
        if count > self.limit:
            return max(1.0, self.window_seconds - (now - window_start))
        return 0.0

    def enforce(self, request: Request) -> None:
        if self.limit <= 0:
            return
        retry_after = self.hit((get_client_ip(request), request.url.path))
        if retry_after:
            raise HTTPException(status_code=429, detail="Rate limit exceeded", headers={"Retry-After": str(int(retry_after))})

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()
