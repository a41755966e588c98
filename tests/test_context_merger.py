from src.skillup.core.context_merger import (
    apply_analysis,
    apply_update,
    initial_context,
    merge_suggestions,
    merge_topics,
)
from src.skillup.domain.session_models import ContextUpdate, ConversationContext, CourseIdea, UserProfile

from tests.utils import idea


def test_merge_topics_appends_new_values_in_order():
    assert merge_topics(["seo"], ["ads", "seo", "email"]) == ["seo", "ads", "email"]


def test_merge_topics_dedupes_within_new_and_is_case_sensitive():
    assert merge_topics([], ["a", "a", "A", ""]) == ["a", "A"]


def test_merge_topics_does_not_mutate_inputs():
    existing = ["x"]
    merge_topics(existing, ["y"])
    assert existing == ["x"]


def test_merge_suggestions_appends_duplicates():
    first = CourseIdea(**idea("One"))
    merged = merge_suggestions([first], [CourseIdea(**idea("One"))])
    assert [i.title for i in merged] == ["One", "One"]


def test_apply_analysis_updates_stage_topics_and_ideas():
    ctx = ConversationContext(identified_topics=["marketing"])
    out = apply_analysis(
        ctx,
        intent="get_course_ideas",
        topics=["marketing", "seo"],
        ideas=[CourseIdea(**idea())],
    )
    assert out.conversation_stage == "ideation"
    assert out.identified_topics == ["marketing", "seo"]
    assert len(out.suggested_courses) == 1
    # input left untouched
    assert ctx.conversation_stage == "discovery"
    assert ctx.suggested_courses == []


def test_apply_update_overrides_stage_and_profile():
    ctx = ConversationContext(conversation_stage="validation", identified_topics=["a"])
    update = ContextUpdate(
        conversation_stage="discovery",
        identified_topics=["a", "b"],
        user_profile=UserProfile(skills=["python"]),
    )
    out = apply_update(ctx, update)
    assert out.conversation_stage == "discovery"
    assert out.identified_topics == ["a", "b"]
    assert out.user_profile.skills == ["python"]


def test_apply_update_keeps_unset_fields():
    ctx = ConversationContext(conversation_stage="ideation", user_profile=UserProfile(industry="retail"))
    out = apply_update(ctx, ContextUpdate())
    assert out.conversation_stage == "ideation"
    assert out.user_profile.industry == "retail"


def test_initial_context_defaults():
    ctx = initial_context()
    assert ctx.conversation_stage == "discovery"
    assert ctx.identified_topics == []
    assert initial_context(ContextUpdate(identified_topics=["x"])).identified_topics == ["x"]
