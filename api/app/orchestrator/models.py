"""Result models for the reflection orchestrator."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel

from app.core.contracts import AnalysisOutcome, FailureKind

RawInferenceResult = dict[str, Any]


class SubmitStatus(str, Enum):
    resolved = "resolved"
    fallback = "fallback"
    duplicate = "duplicate"
    in_flight = "in_flight"
    cancelled = "cancelled"
    not_authenticated = "not_authenticated"


# Transient, user-facing notices shown next to fallback content.
FAILURE_NOTICES: dict[FailureKind, str] = {
    FailureKind.network: "We couldn't reach the guidance service. Here is a steady starting point while you're offline.",
    FailureKind.rate_limited: "Too many requests right now. Try again in a moment; here is a starting point in the meantime.",
    FailureKind.quota_exceeded: "AI usage limit reached. Here is a starting point until it resets.",
    FailureKind.timeout: "The guidance service took too long to answer. Here is a starting point instead.",
    FailureKind.unknown: "Something went wrong while preparing your insight. Here is a starting point instead.",
}

CANCELLED_NOTICE = "Analysis cancelled."
IN_FLIGHT_NOTICE = "An analysis is already in progress."
NOT_AUTHENTICATED_NOTICE = "Please sign in to continue."


class SubmitResult(BaseModel):
    """Result of one orchestrator submission."""
    status: SubmitStatus
    outcome: AnalysisOutcome | None = None
    idempotency_key: str | None = None
    failure: FailureKind | None = None
    notice: str | None = None
    log_entry_id: str | None = None
