"""Response normalizer - fixed per-tool field mapping into AnalysisOutcome.

``normalize`` is total: any unexpected shape degrades to a summary-only
outcome built from the most plausible string field, or an empty outcome
when nothing usable is present.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from app.core.contracts import (
    AnalysisOutcome,
    ControlMap,
    OutcomeSource,
    ToolKind,
    Virtue,
    VirtueDelta,
)

logger = logging.getLogger("wellwell.orchestrator.normalize")

_MAX_ABS_DELTA = 10


@dataclass(frozen=True)
class FieldMap:
    summary: tuple[str, ...]
    stance: tuple[str, ...]
    action: tuple[str, ...]
    tension: tuple[str, ...]
    virtue: tuple[str, ...]
    control_map: str | None = "control_map"
    deltas: tuple[str, ...] = ("virtue_updates",)


_SHARED = FieldMap(
    summary=("summary",),
    stance=("stance",),
    action=("key_actions", "action"),
    tension=("surprise_or_tension",),
    virtue=("virtue", "virtue_focus"),
)

FIELD_MAPS: dict[ToolKind, FieldMap] = {
    ToolKind.morning_preparation: _SHARED,
    ToolKind.decision: _SHARED,
    ToolKind.unified: _SHARED,
    ToolKind.conflict: replace(_SHARED, tension=("surprise_or_tension", "other_perspective")),
    ToolKind.recalibration: FieldMap(
        summary=("reality_check", "summary"),
        stance=("reframe", "stance"),
        action=("immediate_action", "action"),
        tension=("grounding_prompt", "intensity_assessment"),
        virtue=("virtue_applicable", "virtue"),
        control_map=None,
    ),
    ToolKind.evening_review: FieldMap(
        summary=("day_summary", "summary"),
        stance=("tomorrow_stance", "stance"),
        action=("tomorrow_focus", "action"),
        tension=("key_insight", "pattern_detected"),
        virtue=("virtue", "virtue_focus"),
        control_map="extracted_themes",
        deltas=("virtue_updates", "virtue_movements"),
    ),
}

# Order used when salvaging a summary from an unexpected shape.
_PLAUSIBLE_SUMMARY_FIELDS = (
    "summary", "day_summary", "reality_check", "stance", "reframe",
    "tomorrow_stance", "insight", "message", "text", "content",
)


def _clean(value: Any) -> str | None:
    """Non-empty stripped string, else None (never an empty string)."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        return next((t for t in map(_clean, value) if t), None)
    return None


def _first(raw: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    return next((t for t in (_clean(raw.get(k)) for k in keys) if t), None)


def _virtue(value: Any) -> Virtue | None:
    try:
        return Virtue(value.strip().lower()) if isinstance(value, str) else None
    except ValueError:
        return None


def _strings(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        return [s.strip() for s in value if isinstance(s, str) and s.strip()]
    return []


def _control_map(raw: dict[str, Any], field: str | None) -> ControlMap | None:
    if field is None:
        return None
    value = raw.get(field)
    if isinstance(value, str):
        yours = _strings(value)
        return ControlMap(yours=yours) if yours else None
    if not isinstance(value, dict):
        return None
    yours = _strings(value.get("yours")) or _strings(value.get("controlled_well"))
    not_yours = _strings(value.get("not_yours")) or _strings(value.get("escaped_control"))
    if not yours and not not_yours:
        return None
    return ControlMap(yours=yours, not_yours=not_yours)


def _deltas(raw: dict[str, Any], keys: tuple[str, ...], bare_virtue: Virtue | None) -> list[VirtueDelta] | None:
    for key in keys:
        items = raw.get(key)
        if not isinstance(items, list):
            continue
        seen: dict[Virtue, VirtueDelta] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            virtue = _virtue(item.get("virtue"))
            if virtue is None or virtue in seen:
                continue
            try:
                delta = int(round(float(item.get("delta", 0))))
            except (TypeError, ValueError, OverflowError):
                continue
            delta = max(-_MAX_ABS_DELTA, min(_MAX_ABS_DELTA, delta))
            seen[virtue] = VirtueDelta(virtue=virtue, delta=delta)
        return list(seen.values())
    if bare_virtue is not None:
        # Virtue identified, no score change.
        return [VirtueDelta(virtue=bare_virtue, delta=0)]
    return None


def _salvage(raw: Any) -> AnalysisOutcome:
    if isinstance(raw, str):
        return AnalysisOutcome(summary=_clean(raw))
    if not isinstance(raw, dict):
        return AnalysisOutcome()
    summary = _first(raw, _PLAUSIBLE_SUMMARY_FIELDS)
    if summary is None:
        summary = next((t for t in (_clean(v) for v in raw.values()) if t), None)
    return AnalysisOutcome(summary=summary)


def _map(tool: ToolKind, raw: dict[str, Any]) -> AnalysisOutcome:
    fm = FIELD_MAPS[tool]
    virtue_focus = next((v for v in (_virtue(raw.get(k)) for k in fm.virtue) if v), None)
    deltas = _deltas(raw, fm.deltas, virtue_focus)
    if virtue_focus is None and deltas:
        virtue_focus = max(deltas, key=lambda d: abs(d.delta)).virtue
    return AnalysisOutcome(
        summary=_first(raw, fm.summary),
        control_map=_control_map(raw, fm.control_map),
        virtue_focus=virtue_focus,
        tension_note=_first(raw, fm.tension),
        stance=_first(raw, fm.stance),
        action=_first(raw, fm.action),
        virtue_deltas=deltas,
        source=OutcomeSource.inference,
    )


def normalize(tool: ToolKind, raw: Any) -> AnalysisOutcome:
    """Map a tool-specific inference result onto the canonical outcome."""
    try:
        if isinstance(raw, dict):
            outcome = _map(tool, raw)
            if outcome.is_presentable():
                return outcome
    except Exception:
        logger.exception("Normalizer mapping failed for tool=%s - salvaging summary", tool.value)
    try:
        return _salvage(raw)
    except Exception:
        logger.exception("Normalizer salvage failed for tool=%s", tool.value)
        return AnalysisOutcome()
