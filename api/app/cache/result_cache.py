"""Per-user session result cache with a strict freshness window."""

from __future__ import annotations

import time
from typing import Callable

from app.core import config
from app.core.contracts import CachedResult


class SessionResultCache:
    """
    In-memory, per-user last-outcome store.

    - Fixed TTL from the time of ``set`` (no sliding refresh on read).
    - Expired items are dropped on access, and swept on every ``set``.
    - Never the source of truth; losing it only costs a reload restore.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = config.WW_RESULT_CACHE_TTL if ttl_seconds is None else ttl_seconds
        self._clock = clock
        # user_id -> {"value": CachedResult, "expires_at": float}
        self._items: dict[str, dict[str, object]] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, user_id: str) -> CachedResult | None:
        item = self._items.get(user_id)
        if item is None:
            return None
        if float(item["expires_at"]) <= self._clock():
            del self._items[user_id]
            return None
        return item["value"]  # type: ignore[return-value]

    def set(self, user_id: str, value: CachedResult) -> None:
        now = self._clock()
        self.sweep(now)
        self._items[user_id] = {
            "value": value,
            "expires_at": now + self.ttl_seconds,
        }

    def sweep(self, now: float | None = None) -> int:
        """Drop every expired item; return how many were removed."""
        now = self._clock() if now is None else now
        expired = [uid for uid, item in self._items.items() if float(item["expires_at"]) <= now]
        for uid in expired:
            del self._items[uid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._items)

    def clear(self, user_id: str) -> None:
        self._items.pop(user_id, None)
