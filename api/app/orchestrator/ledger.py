"""Score ledger updater - batch append with a one-row-at-a-time replay.

The store has no multi-row transactions we can rely on across calls, so
the update is a two-phase saga:

1. read the latest score of every virtue involved, in one query;
2. compute clamped absolute scores;
3. append all rows in one batch;
4. if the batch fails, append each row on its own and record which
   units landed.  Rows that still fail are logged, not raised.

A partial failure leaves some of an outcome's virtue movements
recorded; each virtue's history stays self-contained.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from app.core import config
from app.core.contracts import ScoreLedgerEntry, Virtue, VirtueDelta, clamp_score
from app.db.repo import PersistenceError

logger = logging.getLogger("wellwell.ledger")


class LedgerPersistenceError(PersistenceError):
    """Raised when prior scores could not be read; nothing was written."""


@dataclass
class LedgerApplyReport:
    written: list[ScoreLedgerEntry] = field(default_factory=list)
    failed: list[ScoreLedgerEntry] = field(default_factory=list)
    skipped: list[ScoreLedgerEntry] = field(default_factory=list)
    batched: bool = False

    @property
    def partial(self) -> bool:
        return bool(self.written) and bool(self.failed)


def effective_deltas(deltas: list[VirtueDelta] | None) -> list[VirtueDelta]:
    """Drop zero deltas and repeated virtues (first entry wins)."""
    seen: dict[Virtue, VirtueDelta] = {}
    for d in deltas or []:
        if d.delta == 0 or d.virtue in seen:
            continue
        seen[d.virtue] = d
    return list(seen.values())


class ScoreLedgerUpdater:
    def __init__(self, store, default_score: int | None = None) -> None:
        self._store = store
        self.default_score = config.WW_DEFAULT_VIRTUE_SCORE if default_score is None else default_score

    def build_rows(self, user_id: str, deltas: list[VirtueDelta], latest: dict[Virtue, int]) -> list[ScoreLedgerEntry]:
        return [
            ScoreLedgerEntry(
                user_id=user_id,
                virtue=d.virtue,
                score=clamp_score(latest.get(d.virtue, self.default_score) + d.delta),
                delta=d.delta,
            )
            for d in deltas
        ]

    async def apply_deltas(
        self,
        user_id: str,
        deltas: list[VirtueDelta] | None,
        is_current: Callable[[], bool] = lambda: True,
    ) -> LedgerApplyReport:
        """Append one row per effective delta.

        ``is_current`` is checked after the read and before every write;
        once it returns False nothing further is appended.
        """
        report = LedgerApplyReport()
        effective = effective_deltas(deltas)
        if not effective:
            return report

        virtues = [d.virtue for d in effective]
        try:
            latest = await asyncio.to_thread(self._store.query_latest_scores_by_virtue, user_id, virtues)
        except PersistenceError as exc:
            raise LedgerPersistenceError(f"cannot read latest scores: {exc}") from exc

        rows = self.build_rows(user_id, effective, latest)
        if not is_current():
            logger.info("[LEDGER] user=%s - token stale after score read, skipping %d rows", user_id[:12], len(rows))
            report.skipped = rows
            return report

        try:
            await asyncio.to_thread(self._store.insert_score_rows, rows)
        except PersistenceError as exc:
            logger.warning(
                "[LEDGER] user=%s - batch of %d rows failed (%s), replaying one by one",
                user_id[:12], len(rows), exc,
            )
        else:
            report.written = rows
            report.batched = True
            logger.info("[LEDGER] user=%s - %d rows appended", user_id[:12], len(rows))
            return report

        for i, row in enumerate(rows):
            if not is_current():
                report.skipped = rows[i:]
                logger.info("[LEDGER] user=%s - token stale during replay, skipping %d rows", user_id[:12], len(report.skipped))
                break
            try:
                await asyncio.to_thread(self._store.insert_score_rows, [row])
            except PersistenceError:
                logger.exception(
                    "[LEDGER] user=%s - row virtue=%s delta=%+d not recorded (non-fatal)",
                    user_id[:12], row.virtue.value, row.delta,
                )
                report.failed.append(row)
            else:
                report.written.append(row)

        logger.info(
            "[LEDGER] user=%s - replay done: %d written, %d failed",
            user_id[:12], len(report.written), len(report.failed),
        )
        return report
