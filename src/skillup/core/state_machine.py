from __future__ import annotations

from typing import Dict, List, Optional

# Conversation stages, in forward order
STAGES: List[str] = ["discovery", "ideation", "planning", "validation"]

# Intents that move the conversation to a fixed stage
INTENT_STAGES: Dict[str, str] = {
    "explore_topics": "ideation",
    "get_course_ideas": "ideation",
    "validate_idea": "validation",
    "learn_more": "validation",
}

STAGE_TRANSITIONS: Dict[str, List[str]] = {
    "discovery": ["ideation", "validation"],
    "ideation": ["ideation", "validation"],
    "planning": ["ideation", "validation"],
    "validation": ["ideation", "validation"],
}


def next_stage(intent: Optional[str], current: Optional[str] = None) -> str:
    """Resolve the stage after a turn with ``intent``.

    Unknown intents keep the current stage. ``discovery`` is only the
    starting point: it is never re-entered from another stage here.
    """
    target = INTENT_STAGES.get((intent or "").strip())
    if target is not None:
        return target
    if current in STAGES:
        return current
    return "discovery"


def is_valid_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    return target in STAGE_TRANSITIONS.get(current, [])
