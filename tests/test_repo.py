import sqlite3

import pytest

from app.core.contracts import (
    AnalysisOutcome,
    InteractionLogEntry,
    ScoreLedgerEntry,
    ToolKind,
    Virtue,
    VirtueDelta,
)
from app.db import repo
from app.db.repo import PersistenceError


def _entry(key: str, summary: str = "steady", created_at: str = "2026-01-01T08:00:00+00:00") -> InteractionLogEntry:
    return InteractionLogEntry(
        user_id="u1",
        tool=ToolKind.evening_review,
        raw_input="long day",
        idempotency_key=key,
        outcome_snapshot=AnalysisOutcome(
            summary=summary,
            virtue_deltas=[VirtueDelta(virtue=Virtue.wisdom, delta=2)],
        ),
        created_at=created_at,
    )


def test_log_entry_round_trip(sqlite_db):
    entry = _entry("k1")
    assert repo.insert_log_entry(entry) == entry.id

    found = repo.query_latest_log_entry("u1", "k1")
    assert found == entry
    assert repo.query_latest_log_entry("u1", "missing") is None
    assert repo.query_latest_log_entry("u2", "k1") is None


def test_list_log_entries_newest_first_and_skips_corrupt_rows(sqlite_db):
    repo.insert_log_entry(_entry("k1", "first", "2026-01-01T08:00:00+00:00"))
    repo.insert_log_entry(_entry("k2", "second", "2026-01-02T08:00:00+00:00"))
    conn = sqlite3.connect(sqlite_db)
    conn.execute(
        "INSERT INTO interaction_log VALUES ('bad', 'u1', 'unified', 'x', 'k3', '{not json', '2026-01-03T00:00:00+00:00')"
    )
    conn.commit()
    conn.close()

    entries = repo.list_log_entries("u1")
    assert [e.outcome_snapshot.summary for e in entries] == ["second", "first"]


def test_latest_scores_by_virtue(sqlite_db):
    repo.insert_score_rows([
        ScoreLedgerEntry(user_id="u1", virtue=Virtue.courage, score=52, delta=2, recorded_at="2026-01-01T00:00:00+00:00"),
        ScoreLedgerEntry(user_id="u1", virtue=Virtue.courage, score=60, delta=8, recorded_at="2026-01-02T00:00:00+00:00"),
        ScoreLedgerEntry(user_id="u1", virtue=Virtue.wisdom, score=40, delta=-10, recorded_at="2026-01-02T00:00:00+00:00"),
        ScoreLedgerEntry(user_id="u2", virtue=Virtue.justice, score=70, delta=5, recorded_at="2026-01-02T00:00:00+00:00"),
    ])
    latest = repo.query_latest_scores_by_virtue("u1", [Virtue.courage, Virtue.justice])
    assert latest == {Virtue.courage: 60}
    assert repo.query_latest_scores_by_virtue("u1", []) == {}


def test_score_batch_is_all_or_nothing(sqlite_db):
    good = ScoreLedgerEntry(user_id="u1", virtue=Virtue.courage, score=55, delta=5)
    bad = ScoreLedgerEntry.model_construct(
        user_id="u1", virtue=Virtue.wisdom, score=150, delta=5, recorded_at="2026-01-01T00:00:00+00:00",
    )
    with pytest.raises(PersistenceError):
        repo.insert_score_rows([good, bad])
    assert repo.query_latest_scores_by_virtue("u1", list(Virtue)) == {}


def test_usage_event_and_ping(sqlite_db):
    event_id = repo.insert_usage_event("u1", ToolKind.decision)
    assert len(event_id) == 32
    assert repo.ping() is True
