"""Deterministic fallback outcome when inference is unavailable or unusable.

Same (tool, raw_input) always yields the same outcome.  Fallbacks never
carry virtue deltas, so synthetic guidance cannot move the score ledger.
"""

from __future__ import annotations

import json

from app.core import config
from app.core.contracts import AnalysisOutcome, ControlMap, OutcomeSource, ToolKind, Virtue

_GROUNDING = (
    "Pause before you respond: take three slow breaths and name three things you can see right now."
)

_YOURS = ["Your next response", "Your tone", "Where you put your attention"]
_NOT_YOURS = ["Other people's reactions", "What has already happened", "How this turns out"]

# tool -> (summary template, stance, action, virtue)
_TEMPLATES: dict[ToolKind, tuple[str, str, str, Virtue]] = {
    ToolKind.morning_preparation: (
        'You named today\'s hard moment: "{echo}". Rehearse your response now, before emotions cloud judgment.',
        "This moment may be difficult. I will meet it prepared and composed.",
        "Write one sentence describing how you want to respond when it happens.",
        Virtue.courage,
    ),
    ToolKind.recalibration: (
        '"{echo}" has you stirred up right now. ' + _GROUNDING,
        "I feel this strongly. I will not let it choose my response.",
        "Wait five minutes before you say or send anything.",
        Virtue.temperance,
    ),
    ToolKind.evening_review: (
        'You reflected on today: "{echo}". Notice what you controlled well and what escaped you.',
        "Today is done. Tomorrow I will carry one lesson forward.",
        "Write down one thing you will do differently tomorrow.",
        Virtue.wisdom,
    ),
    ToolKind.decision: (
        'You are weighing: "{echo}". Separate what you can decide from what you cannot predict.',
        "Every option has a cost. I will choose the one I can act on with conviction.",
        "Set a decision deadline and list the single most important factor.",
        Virtue.wisdom,
    ),
    ToolKind.conflict: (
        'You are dealing with: "{echo}". Their behavior is theirs; your response is yours.',
        "We disagree. I will state my view clearly and listen without defending.",
        "Before your next conversation, ask yourself what they are most upset about.",
        Virtue.justice,
    ),
    ToolKind.unified: (
        'You shared: "{echo}". Start with what is within your control.',
        "Some of this is not up to me. I will act on the part that is.",
        "Name one concrete step you can take in the next hour.",
        Virtue.wisdom,
    ),
}


def _display_text(raw_input: str) -> str:
    """Plain text for echoing; JSON inputs contribute their string fields."""
    text = raw_input.strip()
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text
    if isinstance(parsed, dict):
        parts = [v.strip() for v in parsed.values() if isinstance(v, str) and v.strip()]
        if parts:
            return " / ".join(parts)
    return text


def _truncate(text: str, max_chars: int) -> str:
    text = " ".join(text.split())
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3].rstrip() + "..."


def fallback(tool: ToolKind, raw_input: str) -> AnalysisOutcome:
    summary_tpl, stance, action, virtue = _TEMPLATES[tool]
    echo = _truncate(_display_text(raw_input), config.WW_INPUT_ECHO_CHARS) or "your situation"
    return AnalysisOutcome(
        summary=summary_tpl.format(echo=echo),
        control_map=ControlMap(yours=list(_YOURS), not_yours=list(_NOT_YOURS)),
        virtue_focus=virtue,
        tension_note=None,
        stance=stance,
        action=action,
        virtue_deltas=[],
        source=OutcomeSource.fallback,
    )
