"""Deterministic merge rules for conversation context.

Topics behave as an insertion-ordered set (exact, case-sensitive match);
course suggestions are an append-only list. Every function returns a new
context and leaves its inputs untouched.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from ..domain.session_models import ContextUpdate, ConversationContext, CourseIdea
from .state_machine import next_stage


def merge_topics(existing: Sequence[str], new: Iterable[str]) -> List[str]:
    merged = list(existing)
    seen = set(merged)
    for topic in new or []:
        if not isinstance(topic, str) or not topic:
            continue
        if topic in seen:
            continue
        seen.add(topic)
        merged.append(topic)
    return merged


def merge_suggestions(existing: Sequence[CourseIdea], new: Iterable[CourseIdea]) -> List[CourseIdea]:
    return [idea.model_copy(deep=True) for idea in existing] + [idea.model_copy(deep=True) for idea in new or []]


def apply_analysis(
    context: ConversationContext,
    *,
    intent: Optional[str],
    topics: Iterable[str] = (),
    ideas: Iterable[CourseIdea] = (),
) -> ConversationContext:
    """Fold one chat turn's analysis into ``context``."""
    return ConversationContext(
        conversation_stage=next_stage(intent, context.conversation_stage),
        identified_topics=merge_topics(context.identified_topics, topics),
        suggested_courses=merge_suggestions(context.suggested_courses, ideas),
        user_profile=context.user_profile.model_copy(deep=True) if context.user_profile else None,
    )


def apply_update(context: ConversationContext, update: ContextUpdate) -> ConversationContext:
    """Apply an explicit caller update.

    Stage and profile overwrite when supplied (an explicit stage may move
    backwards); topics and suggestions are appended.
    """
    stage = update.conversation_stage or context.conversation_stage
    profile = update.user_profile if update.user_profile is not None else context.user_profile
    return ConversationContext(
        conversation_stage=stage,
        identified_topics=merge_topics(context.identified_topics, update.identified_topics or []),
        suggested_courses=merge_suggestions(context.suggested_courses, update.suggested_courses or []),
        user_profile=profile.model_copy(deep=True) if profile else None,
    )


def initial_context(update: Optional[ContextUpdate] = None) -> ConversationContext:
    base = ConversationContext()
    if update is None:
        return base
    return apply_update(base, update)
