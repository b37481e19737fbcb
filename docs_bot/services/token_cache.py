"""Expiry-aware access token holder shared by the upstream clients."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

DEFAULT_REFRESH_BUFFER_SECONDS = 300


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: float  # epoch seconds


class TokenCache:
    """Caches one access token and refreshes it shortly before expiry.

    Concurrent refreshes are harmless: whichever finishes last wins, and every
    caller gets a valid token.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[AccessToken]],
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._fetch = fetch
        self._refresh_buffer = refresh_buffer_seconds
        self._clock = clock
        self._current: AccessToken | None = None

    def is_fresh(self) -> bool:
        return (
            self._current is not None
            and self._current.expires_at - self._refresh_buffer > self._clock()
        )

    async def get(self) -> str:
        """Return a valid token, fetching a new one when missing or near expiry."""
        if not self.is_fresh():
            self._current = await self._fetch()
        return self._current.token

    def clear(self) -> None:
        self._current = None
