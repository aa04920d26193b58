from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

SessionKey = Tuple[str, str, str]


@dataclass(frozen=True)
class CachedSession:
    token: str
    expires_at: float


class SessionCache:
    """Process-local cache of HKA session tokens.

    Keys are (transport, environment, credential owner). Entries expire after
    `ttl_seconds`; callers invalidate an entry when HKA rejects its token.
    Separate processes do not share sessions.
    """

    def __init__(self, ttl_seconds: float = 540.0, clock: Callable[[], float] = time.time):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[SessionKey, CachedSession] = {}
        self._lock = threading.Lock()

    def get(self, key: SessionKey) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.token

    def put(self, key: SessionKey, token: str, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else min(float(ttl_seconds), self.ttl_seconds)
        with self._lock:
            self._entries[key] = CachedSession(token=token, expires_at=self._clock() + ttl)

    def invalidate(self, key: SessionKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
