"""Pydantic models for reflection requests, outcomes and the persisted records."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ToolKind(str, Enum):
    morning_preparation = "morning_preparation"
    recalibration = "recalibration"
    evening_review = "evening_review"
    decision = "decision"
    conflict = "conflict"
    unified = "unified"


# Wire names used by older clients.
_TOOL_ALIASES: dict[str, ToolKind] = {
    "pulse": ToolKind.morning_preparation,
    "intervene": ToolKind.recalibration,
    "debrief": ToolKind.evening_review,
}


def coerce_tool(value: Any) -> ToolKind:
    """Resolve a ToolKind from its value or a legacy alias.  Raises ValueError."""
    if isinstance(value, ToolKind):
        return value
    name = str(value).strip().lower()
    if name in _TOOL_ALIASES:
        return _TOOL_ALIASES[name]
    return ToolKind(name)


class Virtue(str, Enum):
    courage = "courage"
    temperance = "temperance"
    justice = "justice"
    wisdom = "wisdom"


class FailureKind(str, Enum):
    network = "network"
    rate_limited = "rate_limited"
    quota_exceeded = "quota_exceeded"
    timeout = "timeout"
    unknown = "unknown"


class OutcomeSource(str, Enum):
    inference = "inference"
    fallback = "fallback"


# ── Outcome ───────────────────────────────────────────────
class VirtueDelta(BaseModel):
    virtue: Virtue
    delta: int


class ControlMap(BaseModel):
    yours: list[str] = Field(default_factory=list)
    not_yours: list[str] = Field(default_factory=list)


class AnalysisOutcome(BaseModel):
    """Canonical, tool-agnostic result handed back to the caller."""
    summary: str | None = None
    control_map: ControlMap | None = None
    virtue_focus: Virtue | None = None
    tension_note: str | None = None
    stance: str | None = None
    action: str | None = None
    virtue_deltas: list[VirtueDelta] | None = None
    source: OutcomeSource = OutcomeSource.inference

    @model_validator(mode="after")
    def _unique_virtues(self) -> "AnalysisOutcome":
        if self.virtue_deltas:
            seen = [d.virtue for d in self.virtue_deltas]
            if len(seen) != len(set(seen)):
                raise ValueError("virtue_deltas names the same virtue more than once")
        return self

    def is_presentable(self) -> bool:
        return bool(self.summary or self.stance)


# ── Request ───────────────────────────────────────────────
class AnalysisRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool: ToolKind
    raw_input: str
    idempotency_key: str

    @field_validator("tool", mode="before")
    @classmethod
    def _resolve_alias(cls, v: Any) -> ToolKind:
        return coerce_tool(v)


# ── Persisted records ─────────────────────────────────────
class InteractionLogEntry(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    tool: ToolKind
    raw_input: str
    idempotency_key: str
    outcome_snapshot: AnalysisOutcome
    created_at: str = Field(default_factory=lambda: utcnow_iso())


class ScoreLedgerEntry(BaseModel):
    user_id: str
    virtue: Virtue
    score: int = Field(ge=0, le=100)
    delta: int
    recorded_at: str = Field(default_factory=lambda: utcnow_iso())


class CachedResult(BaseModel):
    outcome: AnalysisOutcome
    tool: ToolKind
    raw_input: str
    idempotency_key: str
    cached_at: float


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def clamp_score(value: int) -> int:
    return max(0, min(100, value))
