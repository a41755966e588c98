import pytest

from src.skillup.core.state_machine import INTENT_STAGES, is_valid_transition, next_stage


@pytest.mark.parametrize(
    "intent,expected",
    [
        ("explore_topics", "ideation"),
        ("get_course_ideas", "ideation"),
        ("validate_idea", "validation"),
        ("learn_more", "validation"),
    ],
)
def test_known_intents_map_to_fixed_stage(intent, expected):
    assert next_stage(intent, "discovery") == expected
    assert next_stage(intent, "planning") == expected


def test_unknown_intent_keeps_current_stage():
    assert next_stage("general_inquiry", "validation") == "validation"
    assert next_stage(None, "ideation") == "ideation"
    assert next_stage("general_inquiry") == "discovery"


def test_discovery_is_never_reentered():
    for current in ("ideation", "planning", "validation"):
        for intent in list(INTENT_STAGES) + ["general_inquiry", "", None]:
            assert next_stage(intent, current) != "discovery"


def test_next_stage_is_idempotent():
    once = next_stage("explore_topics", "discovery")
    assert next_stage("explore_topics", once) == once


def test_transition_table():
    assert is_valid_transition("discovery", "ideation")
    assert is_valid_transition("ideation", "validation")
    assert is_valid_transition("validation", "ideation")
    assert is_valid_transition("planning", "planning")
    assert not is_valid_transition("validation", "discovery")
