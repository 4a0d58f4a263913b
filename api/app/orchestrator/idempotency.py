"""Idempotency guard - query-before-write dedup against the interaction log."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from enum import Enum

from app.core import config
from app.core.contracts import InteractionLogEntry, ToolKind
from app.db.repo import PersistenceError

logger = logging.getLogger("wellwell.orchestrator.idempotency")


class IdempotencyStatus(str, Enum):
    fresh = "fresh"
    duplicate = "duplicate"


@dataclass
class GuardVerdict:
    status: IdempotencyStatus
    prior: InteractionLogEntry | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.status == IdempotencyStatus.duplicate


def derive_idempotency_key(
    tool: ToolKind,
    raw_input: str,
    submitted_at: float | None = None,
    *,
    window_s: int | None = None,
    echo_chars: int | None = None,
) -> str:
    """Hash tool + truncated input + the submission time bucket.

    Two submissions of the same text through the same tool inside one
    window collapse to the same key.
    """
    window = config.WW_IDEMPOTENCY_WINDOW if window_s is None else window_s
    chars = config.WW_INPUT_ECHO_CHARS if echo_chars is None else echo_chars
    ts = time.time() if submitted_at is None else submitted_at
    bucket = int(ts // window) if window > 0 else int(ts * 1000)

    h = hashlib.sha256()
    h.update(tool.value.encode())
    h.update(b"|")
    h.update(raw_input.strip()[:chars].encode())
    h.update(b"|")
    h.update(str(bucket).encode())
    return h.hexdigest()[:40]


class IdempotencyGuard:
    """Checks the interaction log for a prior record with the same key.

    Store failures fail open: the request is treated as fresh.
    """

    def __init__(self, store) -> None:
        self._store = store

    async def check(self, user_id: str, idempotency_key: str) -> GuardVerdict:
        try:
            prior = await asyncio.to_thread(
                self._store.query_latest_log_entry, user_id, idempotency_key,
            )
        except PersistenceError as exc:
            logger.warning(
                "[GUARD]  key=%s - lookup failed, treating as fresh: %s",
                idempotency_key[:12], exc,
            )
            return GuardVerdict(IdempotencyStatus.fresh)
        except ValueError:
            # Row exists but its snapshot no longer parses.
            logger.warning("[GUARD]  key=%s - prior entry unreadable", idempotency_key[:12])
            return GuardVerdict(IdempotencyStatus.duplicate)

        if prior is None:
            return GuardVerdict(IdempotencyStatus.fresh)
        logger.info("[GUARD]  key=%s - duplicate of log entry %s", idempotency_key[:12], prior.id[:12])
        return GuardVerdict(IdempotencyStatus.duplicate, prior=prior)
