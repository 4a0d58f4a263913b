"""Per-user orchestrator instances for the HTTP layer."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from app.cache.result_cache import SessionResultCache
from app.core import config
from app.core.contracts import ToolKind
from app.db import repo as db_repo
from app.orchestrator.orchestrator import ReflectionOrchestrator

logger = logging.getLogger("wellwell.orchestrator.pool")


class OrchestratorPool:
    """One ReflectionOrchestrator per user id, sharing a session cache.

    An absent user id gets a throwaway instance so the request still goes
    through the orchestrator's authentication precondition.  Instances
    unused for ``idle_ttl_s`` are evicted unless an analysis is in flight.
    """

    def __init__(
        self,
        *,
        store=None,
        client=None,
        cache: SessionResultCache | None = None,
        idle_ttl_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = db_repo if store is None else store
        self._client = client
        self.cache = cache if cache is not None else SessionResultCache()
        self.idle_ttl_s = config.WW_POOL_IDLE_TTL if idle_ttl_s is None else idle_ttl_s
        self._clock = clock
        # user_id -> (orchestrator, last used)
        self._items: dict[str, tuple[ReflectionOrchestrator, float]] = {}

    def __len__(self) -> int:
        return len(self._items)

    def _build(self, user_id: str | None) -> ReflectionOrchestrator:
        return ReflectionOrchestrator(
            session=lambda: user_id,
            store=self._store,
            client=self._client,
            cache=self.cache,
            usage_signal=self._record_usage,
        )

    def get(self, user_id: str | None) -> ReflectionOrchestrator:
        if not user_id:
            return self._build(None)
        now = self._clock()
        self.evict_idle(now)
        item = self._items.get(user_id)
        orch = item[0] if item is not None else self._build(user_id)
        self._items[user_id] = (orch, now)
        return orch

    def evict_idle(self, now: float | None = None) -> int:
        """Drop instances idle past the TTL; armed instances are kept."""
        now = self._clock() if now is None else now
        stale = [
            uid for uid, (orch, last_used) in self._items.items()
            if now - last_used >= self.idle_ttl_s and not orch.is_loading
        ]
        for uid in stale:
            del self._items[uid]
        if stale:
            logger.info("[POOL]   evicted %d idle orchestrators, %d remain", len(stale), len(self._items))
        return len(stale)

    async def _record_usage(self, user_id: str, tool: ToolKind) -> None:
        await asyncio.to_thread(self._store.insert_usage_event, user_id, tool)
        logger.info("[USAGE]  user=%s tool=%s", user_id[:12], tool.value)
