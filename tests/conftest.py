from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any

import pytest

from app.cache.result_cache import SessionResultCache
from app.core import config
from app.core.contracts import InteractionLogEntry, ScoreLedgerEntry, ToolKind, Virtue
from app.db.migrate import run_migration
from app.db.repo import PersistenceError
from app.orchestrator.orchestrator import ReflectionOrchestrator


class FakeStore:
    """In-memory append-only store with switchable failures."""

    def __init__(self) -> None:
        self.log: list[InteractionLogEntry] = []
        self.score_rows: list[ScoreLedgerEntry] = []
        self.usage: list[tuple[str, ToolKind]] = []
        self.seed_scores: dict[Virtue, int] = {}
        self.insert_calls: list[int] = []
        self.fail_log_query = False
        self.fail_log_insert = False
        self.fail_score_read = False
        self.fail_batch = False
        self.fail_virtues: set[Virtue] = set()
        # Set to a threading.Event to hold the score read until it is set.
        self.score_read_gate: threading.Event | None = None
        self.score_read_started = threading.Event()

    def query_latest_log_entry(self, user_id: str, idempotency_key: str) -> InteractionLogEntry | None:
        if self.fail_log_query:
            raise PersistenceError("store unreachable")
        for entry in reversed(self.log):
            if entry.user_id == user_id and entry.idempotency_key == idempotency_key:
                return entry
        return None

    def insert_log_entry(self, entry: InteractionLogEntry) -> str:
        if self.fail_log_insert:
            raise PersistenceError("insert rejected")
        self.log.append(entry)
        return entry.id

    def query_latest_scores_by_virtue(self, user_id: str, virtues) -> dict[Virtue, int]:
        if self.fail_score_read:
            raise PersistenceError("store unreachable")
        self.score_read_started.set()
        if self.score_read_gate is not None:
            self.score_read_gate.wait(timeout=5)
        wanted = set(virtues)
        latest = {v: s for v, s in self.seed_scores.items() if v in wanted}
        for row in self.score_rows:
            if row.user_id == user_id and row.virtue in wanted:
                latest[row.virtue] = row.score
        return latest

    def insert_score_rows(self, rows: list[ScoreLedgerEntry]) -> None:
        self.insert_calls.append(len(rows))
        if self.fail_batch and len(rows) > 1:
            raise PersistenceError("batch rejected")
        if any(r.virtue in self.fail_virtues for r in rows):
            raise PersistenceError("row rejected")
        self.score_rows.extend(rows)

    def insert_usage_event(self, user_id: str, tool: ToolKind) -> str:
        self.usage.append((user_id, tool))
        return f"usage-{len(self.usage)}"


class ScriptedClient:
    """Inference client double: returns ``response`` or raises ``error``.

    With ``hold`` set, each call waits for ``release`` before answering.
    """

    def __init__(self, response: Any = None, error: Exception | None = None, hold: bool = False) -> None:
        self.response = response if response is not None else {"summary": "ok", "stance": "steady"}
        self.error = error
        self.hold = hold
        self.calls = 0
        self.payloads: list[dict] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def invoke(self, payload: dict) -> Any:
        self.calls += 1
        self.payloads.append(payload)
        self.started.set()
        if self.hold:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.response


class ManualClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cache(clock: ManualClock) -> SessionResultCache:
    return SessionResultCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def make_client() -> Callable[..., ScriptedClient]:
    return ScriptedClient


@pytest.fixture
def make_orchestrator(store: FakeStore, cache: SessionResultCache, clock: ManualClock) -> Callable[..., ReflectionOrchestrator]:
    def _make(
        client: ScriptedClient,
        *,
        user_id: str | None = "user-1",
        usage_signal=None,
        timeout_s: float = 5.0,
        notices: list[str] | None = None,
    ) -> ReflectionOrchestrator:
        return ReflectionOrchestrator(
            session=lambda: user_id,
            store=store,
            client=client,
            cache=cache,
            usage_signal=usage_signal,
            notify=notices.append if notices is not None else None,
            timeout_s=timeout_s,
            clock=clock,
        )

    return _make


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch: pytest.MonkeyPatch) -> str:
    path = str(tmp_path / "sqlite" / "wellwell.db")
    monkeypatch.setattr(config, "WW_DB_PATH", path)
    run_migration()
    return path
