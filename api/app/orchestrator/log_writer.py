"""Interaction log writer - one immutable entry per resolved request."""

from __future__ import annotations

import asyncio
import logging

from app.core.contracts import AnalysisOutcome, AnalysisRequest, InteractionLogEntry
from app.db.repo import PersistenceError

logger = logging.getLogger("wellwell.orchestrator.log")


class LogPersistenceError(PersistenceError):
    """Raised when an interaction log entry could not be written."""


class InteractionLogWriter:
    def __init__(self, store) -> None:
        self._store = store

    async def record(self, user_id: str, request: AnalysisRequest, outcome: AnalysisOutcome) -> str:
        """Persist the outcome under the request's idempotency key; return the entry id."""
        entry = InteractionLogEntry(
            user_id=user_id,
            tool=request.tool,
            raw_input=request.raw_input,
            idempotency_key=request.idempotency_key,
            outcome_snapshot=outcome,
        )
        try:
            entry_id = await asyncio.to_thread(self._store.insert_log_entry, entry)
        except PersistenceError as exc:
            raise LogPersistenceError(f"interaction log write failed: {exc}") from exc
        logger.info(
            "[LOG]    key=%s - entry=%s tool=%s source=%s",
            request.idempotency_key[:12], entry_id[:12], request.tool.value, outcome.source.value,
        )
        return entry_id
