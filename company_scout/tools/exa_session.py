from __future__ import annotations

import time
from typing import Callable


class ExaSessionManager:
    """TTL cache for the search provider's session id.

    Shared by every request a client issues. There is no lock: concurrent
    refreshes simply overwrite each other and the last handshake wins.
    """

    def __init__(self, ttl_seconds: float = 240.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float = 0.0

    def get(self) -> str | None:
        """Return the cached token while it is still fresh."""
        if self._token is None or self._clock() >= self._expires_at:
            return None
        return self._token

    def store(self, token: str) -> None:
        self._token = token
        self._expires_at = self._clock() + self.ttl_seconds

    def invalidate(self) -> None:
        self._expires_at = 0.0

    @property
    def is_valid(self) -> bool:
        return self.get() is not None
