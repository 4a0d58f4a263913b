"""Prompt templates for the reflection tools.

Each tool payload carries a ``type`` that selects its template; every
template ends with the JSON shape the normalizer expects for that tool.
"""

from __future__ import annotations

from typing import Any

_VIRTUES = '"courage" | "temperance" | "justice" | "wisdom"'

_SHARED_SHAPE = (
    "{\n"
    '  "summary": "One sentence synthesis of the situation",\n'
    '  "control_map": {"yours": ["..."], "not_yours": ["..."]},\n'
    f'  "virtue": {_VIRTUES},\n'
    '  "virtue_rationale": "Why this virtue applies",\n'
    '  "stance": "A personal stance statement (two sentences max)",\n'
    '  "key_actions": ["ONE concrete action for right now"],\n'
    '  "surprise_or_tension": "A non-obvious insight or blind spot"\n'
    "}"
)


def system_prompt() -> str:
    """System prompt shared by every tool."""
    return (
        "You are a Stoic philosophy advisor. Separate what is within the user's control "
        "from what is not, map the situation to one of four virtues (courage, temperance, "
        "justice, wisdom), and give one concrete, immediate action. Be composed and direct; "
        "no platitudes. Always respond with valid JSON matching the requested schema."
    )


def pulse_prompt(challenge: str) -> str:
    return (
        f"Morning preparation. Today's hardest moment:\n\"{challenge}\"\n\n"
        f"Rehearse the response before it happens. Respond with JSON:\n{_SHARED_SHAPE}"
    )


def intervene_prompt(trigger: str, intensity: int) -> str:
    return (
        f"In-the-moment recalibration. The user is triggered right now.\n"
        f"Trigger: \"{trigger}\"\nIntensity: {intensity}/10\n\n"
        f"Separate facts from interpretations and ground them. Respond with JSON:\n"
        "{\n"
        '  "reality_check": "What is actually true vs feared",\n'
        f'  "virtue_applicable": {_VIRTUES},\n'
        '  "reframe": "A Stoic reframe (two sentences)",\n'
        '  "immediate_action": "One thing to do in under 5 minutes",\n'
        '  "grounding_prompt": "A physical or mental anchor",\n'
        '  "intensity_assessment": "Brief assessment of the intensity"\n'
        "}"
    )


def debrief_prompt(payload: dict[str, Any]) -> str:
    if payload.get("freeform"):
        body = f"Freeform reflection:\n\"{payload.get('challenge_faced', '')}\""
    else:
        body = (
            f"What challenged me: \"{payload.get('challenge_faced', '')}\"\n"
            f"How I responded: \"{payload.get('response_given', '')}\"\n"
            f"What I'd do differently: \"{payload.get('would_do_differently', '')}\""
        )
    return (
        f"Evening review.\n{body}\n\n"
        f"Score virtue movements from the user's ACTUAL actions. Respond with JSON:\n"
        "{\n"
        '  "day_summary": "2-3 sentence synthesis",\n'
        '  "extracted_themes": {"controlled_well": ["..."], "escaped_control": ["..."], "improvement": "..."},\n'
        f'  "virtue_movements": [{{"virtue": {_VIRTUES}, "delta": -10 to 10, "reason": "..."}}],\n'
        '  "tomorrow_focus": "ONE thing to do differently tomorrow",\n'
        '  "tomorrow_stance": "A stance for tomorrow (two sentences max)",\n'
        '  "pattern_detected": "A recurring pattern or null",\n'
        '  "key_insight": "One non-obvious insight"\n'
        "}"
    )


def decision_prompt(dilemma: str) -> str:
    return (
        f"The user is facing a decision:\n\"{dilemma}\"\n\n"
        f"Look for hidden assumptions and second-order effects. Respond with JSON:\n{_SHARED_SHAPE}"
    )


def conflict_prompt(situation: str) -> str:
    return (
        f"The user is dealing with interpersonal conflict:\n\"{situation}\"\n\n"
        f"Consider what drives the other person (add an \"other_perspective\" field). "
        f"Respond with JSON:\n{_SHARED_SHAPE}"
    )


def unified_prompt(text: str) -> str:
    return (
        f"The user shared:\n\"{text}\"\n\n"
        f"Decide whether this is anticipation, a live trigger, a reflection, a decision or a "
        f"conflict (add a \"detected_mode\" field), then respond with JSON:\n{_SHARED_SHAPE}"
    )


def user_prompt(payload: dict[str, Any]) -> str:
    """Render the user prompt for a tool payload.  Raises ValueError on unknown type."""
    kind = payload.get("type")
    if kind == "pulse":
        return pulse_prompt(payload.get("challenge", ""))
    if kind == "intervene":
        return intervene_prompt(payload.get("trigger", ""), int(payload.get("intensity", 5)))
    if kind == "debrief":
        return debrief_prompt(payload)
    if kind == "decision":
        return decision_prompt(payload.get("dilemma", ""))
    if kind == "conflict":
        return conflict_prompt(payload.get("situation", ""))
    if kind == "unified":
        return unified_prompt(payload.get("input", ""))
    raise ValueError(f"Invalid request type: {kind!r}")


def build_messages(payload: dict[str, Any]) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt()},
        {"role": "user", "content": user_prompt(payload)},
    ]
