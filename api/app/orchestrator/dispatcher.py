"""Inference dispatcher - tool payload building and the guarded external call."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from app.core import config
from app.core.contracts import AnalysisRequest, ToolKind
from app.llm.inference_client import (
    InferenceError,
    InferenceTimeout,
    InferenceUnknownFailure,
)
from app.orchestrator.cancellation import CancellationController, CancellationToken
from app.orchestrator.models import RawInferenceResult

logger = logging.getLogger("wellwell.orchestrator.dispatch")

_DEFAULT_INTENSITY = 5


def _structured_fields(raw_input: str) -> dict[str, Any] | None:
    """Return the JSON object embedded in raw_input, or None for plain text."""
    try:
        parsed = json.loads(raw_input)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _text(fields: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = fields.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _intensity(value: Any) -> int:
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return _DEFAULT_INTENSITY
    return max(1, min(10, n))


def _recalibration_payload(raw_input: str) -> dict[str, Any]:
    fields = _structured_fields(raw_input)
    trigger = _text(fields, "trigger", "situation") if fields else ""
    if not trigger:
        return {"type": "intervene", "trigger": raw_input, "intensity": _DEFAULT_INTENSITY}
    return {"type": "intervene", "trigger": trigger, "intensity": _intensity(fields.get("intensity"))}


def _debrief_payload(raw_input: str) -> dict[str, Any]:
    fields = _structured_fields(raw_input) or {}
    challenge = _text(fields, "escaped", "challenge")
    response = _text(fields, "controlled", "response")
    differently = _text(fields, "tomorrow")
    if challenge or response or differently:
        return {
            "type": "debrief",
            "challenge_faced": challenge,
            "response_given": response,
            "would_do_differently": differently,
            "freeform": False,
        }
    reflection = _text(fields, "reflection") or raw_input
    return {
        "type": "debrief",
        "challenge_faced": reflection,
        "response_given": "",
        "would_do_differently": "",
        "freeform": True,
    }


def build_payload(tool: ToolKind, raw_input: str) -> dict[str, Any]:
    """Return the tool-specific payload for the inference endpoint."""
    text = raw_input.strip()

    if tool == ToolKind.morning_preparation:
        return {"type": "pulse", "challenge": text}
    if tool == ToolKind.recalibration:
        return _recalibration_payload(text)
    if tool == ToolKind.evening_review:
        return _debrief_payload(text)
    if tool == ToolKind.decision:
        return {"type": "decision", "dilemma": text}
    if tool == ToolKind.conflict:
        return {"type": "conflict", "situation": text}
    return {"type": "unified", "input": text}


class InferenceDispatcher:
    """Builds the payload, calls out, and observes the token at two checkpoints.

    ``dispatch`` returns None when the token stopped being current before
    the call or while it was in flight; nothing downstream may run then.
    """

    def __init__(self, client, timeout_s: float | None = None) -> None:
        self._client = client
        self.timeout_s = config.WW_INFERENCE_TIMEOUT if timeout_s is None else timeout_s

    async def dispatch(
        self,
        request: AnalysisRequest,
        token: CancellationToken,
        controller: CancellationController,
    ) -> RawInferenceResult | None:
        key = request.idempotency_key[:12]
        if not controller.is_current(token):
            logger.info("[DISPATCH] key=%s - token stale before call, skipping", key)
            return None

        payload = build_payload(request.tool, request.raw_input)
        failure: InferenceError | None = None
        raw: RawInferenceResult | None = None

        try:
            raw = await asyncio.wait_for(self._client.invoke(payload), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            failure = InferenceTimeout(f"no response within {self.timeout_s}s")
        except InferenceError as exc:
            failure = exc
        except Exception as exc:
            failure = InferenceUnknownFailure(f"{type(exc).__name__}: {exc}")

        if not controller.is_current(token):
            logger.info("[DISPATCH] key=%s - token stale after call, discarding result", key)
            return None
        if failure is not None:
            logger.warning(
                "[DISPATCH] key=%s - %s failure for tool=%s: %s",
                key, failure.kind.value, request.tool.value, failure,
            )
            raise failure
        return raw
