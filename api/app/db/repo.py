"""DB helpers for interaction_log, score_ledger and usage_event.

All tables are append-only; nothing here updates or deletes a row.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from typing import Iterable, Iterator

from app.core.contracts import (
    AnalysisOutcome,
    InteractionLogEntry,
    ScoreLedgerEntry,
    ToolKind,
    Virtue,
    utcnow_iso,
)
from app.db.conn import get_conn

logger = logging.getLogger("wellwell.db.repo")


class PersistenceError(Exception):
    """Raised when the backing store rejects a read or write."""


@contextmanager
def _connection() -> Iterator[sqlite3.Connection]:
    try:
        conn = get_conn()
    except sqlite3.Error as exc:
        raise PersistenceError(f"cannot open store: {exc}") from exc
    try:
        yield conn
    except sqlite3.Error as exc:
        raise PersistenceError(str(exc)) from exc
    finally:
        conn.close()


def _row_to_log_entry(row: sqlite3.Row) -> InteractionLogEntry:
    return InteractionLogEntry(
        id=row["id"],
        user_id=row["user_id"],
        tool=ToolKind(row["tool"]),
        raw_input=row["raw_input"],
        idempotency_key=row["idempotency_key"],
        outcome_snapshot=AnalysisOutcome.model_validate_json(row["outcome_json"]),
        created_at=row["created_at"],
    )


# ── interaction_log ───────────────────────────────────────
def query_latest_log_entry(user_id: str, idempotency_key: str) -> InteractionLogEntry | None:
    with _connection() as conn:
        row = conn.execute(
            """SELECT * FROM interaction_log
               WHERE user_id = ? AND idempotency_key = ?
               ORDER BY created_at DESC, rowid DESC
               LIMIT 1""",
            (user_id, idempotency_key),
        ).fetchone()
    return _row_to_log_entry(row) if row else None


def insert_log_entry(entry: InteractionLogEntry) -> str:
    with _connection() as conn:
        conn.execute(
            """INSERT INTO interaction_log
               (id, user_id, tool, raw_input, idempotency_key, outcome_json, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                entry.id,
                entry.user_id,
                entry.tool.value,
                entry.raw_input,
                entry.idempotency_key,
                entry.outcome_snapshot.model_dump_json(),
                entry.created_at,
            ),
        )
        conn.commit()
    return entry.id


def list_log_entries(user_id: str, limit: int = 20) -> list[InteractionLogEntry]:
    with _connection() as conn:
        rows = conn.execute(
            """SELECT * FROM interaction_log
               WHERE user_id = ?
               ORDER BY created_at DESC, rowid DESC
               LIMIT ?""",
            (user_id, limit),
        ).fetchall()
    entries: list[InteractionLogEntry] = []
    for row in rows:
        try:
            entries.append(_row_to_log_entry(row))
        except ValueError:
            logger.warning("Skipping unreadable interaction_log row id=%s", row["id"])
    return entries


# ── score_ledger ──────────────────────────────────────────
def query_latest_scores_by_virtue(user_id: str, virtues: Iterable[Virtue]) -> dict[Virtue, int]:
    """Return the most recent score for each requested virtue that has history."""
    names = [Virtue(v).value for v in virtues]
    if not names:
        return {}
    placeholders = ", ".join("?" for _ in names)
    with _connection() as conn:
        rows = conn.execute(
            f"""SELECT virtue, score FROM score_ledger
                WHERE user_id = ? AND virtue IN ({placeholders})
                ORDER BY recorded_at DESC, row_id DESC""",
            (user_id, *names),
        ).fetchall()
    latest: dict[Virtue, int] = {}
    for row in rows:
        virtue = Virtue(row["virtue"])
        if virtue not in latest:
            latest[virtue] = int(row["score"])
    return latest


def insert_score_rows(rows: list[ScoreLedgerEntry]) -> None:
    """Append all rows in one transaction; nothing is written if any row fails."""
    if not rows:
        return
    with _connection() as conn:
        conn.executemany(
            """INSERT INTO score_ledger (user_id, virtue, score, delta, recorded_at)
               VALUES (?, ?, ?, ?, ?)""",
            [(r.user_id, r.virtue.value, r.score, r.delta, r.recorded_at) for r in rows],
        )
        conn.commit()


# ── usage_event ───────────────────────────────────────────
def insert_usage_event(user_id: str, tool: ToolKind) -> str:
    event_id = uuid.uuid4().hex
    with _connection() as conn:
        conn.execute(
            "INSERT INTO usage_event (event_id, user_id, tool, used_at) VALUES (?, ?, ?, ?)",
            (event_id, user_id, tool.value, utcnow_iso()),
        )
        conn.commit()
    return event_id


def ping() -> bool:
    try:
        with _connection() as conn:
            conn.execute("SELECT 1")
        return True
    except PersistenceError:
        return False
