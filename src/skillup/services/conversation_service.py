from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..domain.session_models import (
    ChatTurnRequest,
    ChatTurnResult,
    ContextUpdate,
    CourseIdea,
    IntentAnalysis,
)
from ..infrastructure.session_store import SessionStore
from .chat_ai import Completion, IdeaGenerator, IntentAnalyzer, build_conversation, decode_json
from .prompts import suggestions_prompt
from .telemetry_sink import TelemetrySink

logger = logging.getLogger("skillup.chat")


class ConversationService:
    """Chat turns against a session, with the session mutated only on success."""

    def __init__(
        self,
        store: SessionStore,
        completion: Completion,
        analyzer: IntentAnalyzer,
        ideas: IdeaGenerator,
        *,
        prompt_history: int = 10,
        telemetry: Optional[TelemetrySink] = None,
    ) -> None:
        self._store = store
        self._completion = completion
        self._analyzer = analyzer
        self._ideas = ideas
        self._window = prompt_history
        self._telemetry = telemetry or TelemetrySink()

    async def handle_turn(self, request: ChatTurnRequest) -> ChatTurnResult:
        sid = request.session_id
        # Held across provider awaits: turns on one session apply in order
        async with self._store.hold(sid):
            session = await self._store.get_or_create(sid, request.user_id)
            analysis = await self._analyzer.analyze(request.message)
            turns = build_conversation(
                request.message,
                [turn.model_dump() for turn in session.history],
                session.context,
                self._window,
            )
            reply = await self._completion.complete(turns)

            ideas: Optional[List[CourseIdea]] = None
            if request.generate_ideas:
                try:
                    ideas = await self._ideas.generate(request.message, session.context)
                except Exception:
                    logger.warning("idea_generation_failed session=%s", sid, exc_info=True)

            updated = await self._store.record_turn(
                sid,
                user_message=request.message,
                assistant_reply=reply,
                intent=analysis.intent,
                topics=analysis.topics,
                ideas=ideas or [],
                metadata={"sentiment": analysis.sentiment},
            )

        logger.info(
            "chat_turn session=%s intent=%s stage=%s",
            sid,
            analysis.intent,
            updated.context.conversation_stage,
        )
        self._telemetry.record(
            "chat_turn",
            actor=request.user_id,
            session_id=sid,
            intent=analysis.intent,
            ideas=len(ideas or []),
        )
        return ChatTurnResult(
            session_id=sid,
            reply=reply,
            analysis=analysis,
            course_ideas=ideas,
            context=updated.context,
        )

    async def generate_ideas(self, user_input: str, session_id: Optional[str] = None) -> List[CourseIdea]:
        if not session_id:
            return await self._ideas.generate(user_input)
        async with self._store.hold(session_id):
            context = await self._store.get_context(session_id)
            ideas = await self._ideas.generate(user_input, context)
            await self._store.update_context(session_id, ContextUpdate(suggested_courses=ideas))
        return ideas

    async def analyze(self, user_input: str) -> IntentAnalysis:
        return await self._analyzer.analyze(user_input)

    async def suggest_followups(self, session_id: str, last_message: Optional[str] = None) -> List[str]:
        context = await self._store.get_context(session_id)
        text = await self._completion.complete([
            {"role": "user", "content": suggestions_prompt(context, last_message)},
        ])
        return decode_json(text, List[str])

    def health(self) -> Dict[str, Any]:
        info = getattr(self._completion, "info", None)
        details = info() if callable(info) else {"provider": type(self._completion).__name__}
        return {"status": "ok", "service": "CourseBot", **details}
