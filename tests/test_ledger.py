import asyncio

import pytest

from app.core.contracts import Virtue, VirtueDelta
from app.orchestrator.ledger import LedgerPersistenceError, ScoreLedgerUpdater, effective_deltas


def _d(virtue: Virtue, delta: int) -> VirtueDelta:
    return VirtueDelta(virtue=virtue, delta=delta)


def test_effective_deltas_drop_zero_and_repeats():
    deltas = [_d(Virtue.courage, 0), _d(Virtue.wisdom, 3), _d(Virtue.wisdom, 7)]
    assert [(d.virtue, d.delta) for d in effective_deltas(deltas)] == [(Virtue.wisdom, 3)]
    assert effective_deltas(None) == []


def test_default_prior_and_clamping(store):
    store.seed_scores[Virtue.courage] = 98
    store.seed_scores[Virtue.justice] = 3
    updater = ScoreLedgerUpdater(store, default_score=50)

    report = asyncio.run(updater.apply_deltas("u1", [
        _d(Virtue.courage, 10),
        _d(Virtue.justice, -8),
        _d(Virtue.wisdom, 4),
    ]))
    scores = {r.virtue: r.score for r in store.score_rows}
    assert scores == {Virtue.courage: 100, Virtue.justice: 0, Virtue.wisdom: 54}
    assert report.batched
    assert store.insert_calls == [3]


def test_nothing_to_write_skips_store(store):
    store.fail_score_read = True
    report = asyncio.run(ScoreLedgerUpdater(store).apply_deltas("u1", [_d(Virtue.courage, 0)]))
    assert report.written == []
    assert store.insert_calls == []


def test_read_failure_raises_and_writes_nothing(store):
    store.fail_score_read = True
    with pytest.raises(LedgerPersistenceError):
        asyncio.run(ScoreLedgerUpdater(store).apply_deltas("u1", [_d(Virtue.courage, 2)]))
    assert store.score_rows == []


def test_batch_failure_replays_row_by_row(store):
    store.fail_batch = True
    store.fail_virtues = {Virtue.justice}
    report = asyncio.run(ScoreLedgerUpdater(store).apply_deltas("u1", [
        _d(Virtue.courage, 2),
        _d(Virtue.justice, 2),
        _d(Virtue.wisdom, -1),
    ]))
    assert not report.batched
    assert report.partial
    assert [r.virtue for r in report.written] == [Virtue.courage, Virtue.wisdom]
    assert [r.virtue for r in report.failed] == [Virtue.justice]
    assert store.insert_calls == [3, 1, 1, 1]
    assert {r.virtue for r in store.score_rows} == {Virtue.courage, Virtue.wisdom}


def test_stale_token_after_read_skips_all_writes(store):
    report = asyncio.run(ScoreLedgerUpdater(store).apply_deltas(
        "u1", [_d(Virtue.courage, 2), _d(Virtue.wisdom, 1)], is_current=lambda: False,
    ))
    assert store.insert_calls == []
    assert report.written == []
    assert [r.virtue for r in report.skipped] == [Virtue.courage, Virtue.wisdom]


def test_replay_stops_once_token_goes_stale(store):
    store.fail_batch = True
    checks = iter([True, True, False])
    report = asyncio.run(ScoreLedgerUpdater(store).apply_deltas(
        "u1",
        [_d(Virtue.courage, 2), _d(Virtue.justice, 2), _d(Virtue.wisdom, -1)],
        is_current=lambda: next(checks),
    ))
    assert store.insert_calls == [3, 1]
    assert [r.virtue for r in report.written] == [Virtue.courage]
    assert [r.virtue for r in report.skipped] == [Virtue.justice, Virtue.wisdom]
