"""Reflection Orchestrator - one durable, idempotent, cancellable outcome per submission.

Side effects (interaction log, score ledger, usage signal) happen only
while the submission's token is current; a cancelled or superseded call
reaches no persisted state after its last passed checkpoint.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from app.cache.result_cache import SessionResultCache
from app.core.contracts import (
    AnalysisOutcome,
    AnalysisRequest,
    CachedResult,
    FailureKind,
    ToolKind,
    coerce_tool,
)
from app.db import repo as db_repo
from app.llm.inference_client import InferenceClient, InferenceError
from app.orchestrator.cancellation import CancellationController, CancellationToken, ControllerState
from app.orchestrator.dispatcher import InferenceDispatcher
from app.orchestrator.fallback import fallback
from app.orchestrator.idempotency import IdempotencyGuard, derive_idempotency_key
from app.orchestrator.ledger import LedgerPersistenceError, ScoreLedgerUpdater
from app.orchestrator.log_writer import InteractionLogWriter, LogPersistenceError
from app.orchestrator.models import (
    CANCELLED_NOTICE,
    FAILURE_NOTICES,
    IN_FLIGHT_NOTICE,
    NOT_AUTHENTICATED_NOTICE,
    SubmitResult,
    SubmitStatus,
)
from app.orchestrator.normalizer import normalize

logger = logging.getLogger("wellwell.orchestrator")

SessionProvider = Callable[[], "str | None"]
UsageSignal = Callable[[str, ToolKind], Awaitable[None]]


class ReflectionOrchestrator:
    """Turns one piece of free text into exactly one analysis outcome."""

    def __init__(
        self,
        *,
        session: SessionProvider,
        store=None,
        client=None,
        cache: SessionResultCache | None = None,
        usage_signal: UsageSignal | None = None,
        notify: Callable[[str], None] | None = None,
        timeout_s: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        store = db_repo if store is None else store
        self._session = session
        self._controller = CancellationController()
        self._guard = IdempotencyGuard(store)
        self._dispatcher = InferenceDispatcher(client or InferenceClient(), timeout_s)
        self._log_writer = InteractionLogWriter(store)
        self._ledger = ScoreLedgerUpdater(store)
        self._cache = cache if cache is not None else SessionResultCache()
        self._usage_signal = usage_signal
        self._notify_cb = notify
        self._clock = clock
        self._current: AnalysisOutcome | None = None
        self.last_notice: str | None = None

    # ── Observable state ──────────────────────────────────
    @property
    def is_loading(self) -> bool:
        return self._controller.is_armed

    @property
    def current_outcome(self) -> AnalysisOutcome | None:
        return self._current

    @property
    def state(self) -> ControllerState:
        return self._controller.state

    def _notify(self, message: str) -> None:
        self.last_notice = message
        if self._notify_cb is not None:
            self._notify_cb(message)

    # ── Caller API ────────────────────────────────────────
    async def submit(self, tool: ToolKind | str, raw_input: str, idempotency_key: str | None = None) -> AnalysisOutcome | None:
        """Resolve to an outcome, or None when the submission was ignored."""
        return (await self.analyze(tool, raw_input, idempotency_key)).outcome

    def cancel(self) -> bool:
        """Cancel the in-flight submission.  No-op unless one is armed."""
        if not self._controller.cancel():
            return False
        self._notify(CANCELLED_NOTICE)
        return True

    def reset(self) -> None:
        """Clear the cached and current outcome.  Log and ledger are untouched."""
        self.cancel()
        self._current = None
        user_id = self._session()
        if user_id:
            self._cache.clear(user_id)

    def restore(self) -> AnalysisOutcome | None:
        """Adopt the session-cached outcome if it is still fresh."""
        user_id = self._session()
        if not user_id:
            return None
        cached = self._cache.get(user_id)
        if cached is not None and self._current is None:
            self._current = cached.outcome
        return self._current

    # ── Submission pipeline ───────────────────────────────
    async def analyze(self, tool: ToolKind | str, raw_input: str, idempotency_key: str | None = None) -> SubmitResult:
        user_id = self._session()
        if not user_id:
            logger.info("[REFLECT] rejected - not authenticated")
            self._notify(NOT_AUTHENTICATED_NOTICE)
            return SubmitResult(status=SubmitStatus.not_authenticated, notice=NOT_AUTHENTICATED_NOTICE)

        tool = coerce_tool(tool)

        # Armed before the first await: is_loading flips immediately and a
        # concurrent submission cannot slip past the guard.
        token = self._controller.arm()
        if token is None:
            logger.info("[REFLECT] ignored - analysis already in progress (tool=%s)", tool.value)
            return SubmitResult(status=SubmitStatus.in_flight, notice=IN_FLIGHT_NOTICE)

        key = idempotency_key or derive_idempotency_key(tool, raw_input, self._clock())
        request = AnalysisRequest(tool=tool, raw_input=raw_input, idempotency_key=key)
        self.last_notice = None
        logger.info(
            "[REFLECT] key=%s - submit tool=%s input=%d chars generation=%d",
            key[:12], tool.value, len(raw_input), token.generation,
        )

        try:
            return await self._run(user_id, request, token)
        finally:
            # Unexpected exit (exception or task cancellation) must not wedge the instance.
            if self._controller.is_current(token):
                self._controller.cancel()

    async def _run(self, user_id: str, request: AnalysisRequest, token: CancellationToken) -> SubmitResult:
        key = request.idempotency_key

        def is_current() -> bool:
            return self._controller.is_current(token)

        verdict = await self._guard.check(user_id, key)
        if not is_current():
            return self._discarded(request, "after idempotency check")
        if verdict.is_duplicate:
            outcome = verdict.prior.outcome_snapshot if verdict.prior is not None else None
            self._finish(user_id, request, token, outcome)
            return SubmitResult(status=SubmitStatus.duplicate, outcome=outcome, idempotency_key=key)

        failure: FailureKind | None = None
        try:
            raw = await self._dispatcher.dispatch(request, token, self._controller)
        except InferenceError as exc:
            failure = exc.kind
        else:
            if raw is None:
                return self._discarded(request, "during inference")
            outcome = normalize(request.tool, raw)
            if not outcome.is_presentable():
                logger.warning("[REFLECT] key=%s - inference result unusable", key[:12])
                failure = FailureKind.unknown
        if failure is not None:
            logger.info("[REFLECT] key=%s - fallback (%s) for tool=%s", key[:12], failure.value, request.tool.value)
            outcome = fallback(request.tool, request.raw_input)

        if not is_current():
            return self._discarded(request, "before log write")
        log_entry_id: str | None = None
        try:
            log_entry_id = await self._log_writer.record(user_id, request, outcome)
        except LogPersistenceError:
            logger.exception("[REFLECT] key=%s - interaction log write failed (non-fatal)", key[:12])

        if not is_current():
            return self._discarded(request, "before ledger update")
        if outcome.virtue_deltas:
            try:
                await self._ledger.apply_deltas(user_id, outcome.virtue_deltas, is_current)
            except LedgerPersistenceError:
                logger.exception("[REFLECT] key=%s - ledger update failed (non-fatal)", key[:12])

        if not is_current():
            return self._discarded(request, "before resolve")
        self._finish(user_id, request, token, outcome)

        notice = FAILURE_NOTICES[failure] if failure is not None else None
        if notice:
            self._notify(notice)
        await self._signal_usage(user_id, request)

        logger.info(
            "[REFLECT] key=%s - resolved source=%s log=%s",
            key[:12], outcome.source.value, (log_entry_id or "-")[:12],
        )
        return SubmitResult(
            status=SubmitStatus.fallback if failure is not None else SubmitStatus.resolved,
            outcome=outcome,
            idempotency_key=key,
            failure=failure,
            notice=notice,
            log_entry_id=log_entry_id,
        )

    # ── Helpers ───────────────────────────────────────────
    def _finish(self, user_id: str, request: AnalysisRequest, token: CancellationToken, outcome: AnalysisOutcome | None) -> None:
        """Armed -> Resolved; publish the outcome to the instance and session cache."""
        self._controller.resolve(token)
        if outcome is None:
            return
        self._current = outcome
        self._cache.set(user_id, CachedResult(
            outcome=outcome,
            tool=request.tool,
            raw_input=request.raw_input,
            idempotency_key=request.idempotency_key,
            cached_at=self._cache.now(),
        ))

    def _discarded(self, request: AnalysisRequest, where: str) -> SubmitResult:
        logger.info("[REFLECT] key=%s - cancelled or superseded %s, discarding", request.idempotency_key[:12], where)
        return SubmitResult(status=SubmitStatus.cancelled, idempotency_key=request.idempotency_key, notice=CANCELLED_NOTICE)

    async def _signal_usage(self, user_id: str, request: AnalysisRequest) -> None:
        if self._usage_signal is None:
            return
        try:
            await self._usage_signal(user_id, request.tool)
        except Exception:
            logger.exception("[REFLECT] key=%s - usage signal failed (non-fatal)", request.idempotency_key[:12])
