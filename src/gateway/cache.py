"""Short-lived in-memory cache for gateway responses.

The Client Portal gateway is slow and rate limited; a dashboard refresh or a
report run re-requests the same endpoints, so identical requests are served
from here for a few minutes.
"""
from __future__ import annotations

import hashlib
import threading
import time
from typing import Any, Callable


def cache_key(method: str, url: str, body: str | None, accept: str, user_agent: str) -> str:
    digest = hashlib.sha1(f"{url}|{body or ''}|{accept}|{user_agent}".encode()).hexdigest()
    return f"ibkr_http_{method.lower()}_{digest}"


class ResponseCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (expires_at, value)
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._store[key]
                return None
            return value

    def put(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            self._store[key] = (self._clock() + ttl, value)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
