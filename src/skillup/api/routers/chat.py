from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...domain.session_models import (
    AnalyzeRequest,
    ChatTurnRequest,
    ChatTurnResult,
    IdeasRequest,
    SuggestionsRequest,
)
from ...services.bootstrap import AppServices
from ..deps import get_services

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/enhanced", response_model=ChatTurnResult)
async def enhanced_chat(req: ChatTurnRequest, services: AppServices = Depends(get_services)) -> ChatTurnResult:
    return await services.conversation.handle_turn(req)


@router.post("/generate-ideas")
async def generate_ideas(req: IdeasRequest, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    ideas = await services.conversation.generate_ideas(req.user_input, req.session_id)
    return {"success": True, "ideas": [idea.model_dump() for idea in ideas]}


@router.post("/analyze")
async def analyze_input(req: AnalyzeRequest, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    analysis = await services.conversation.analyze(req.user_input)
    return {"success": True, "analysis": analysis.model_dump()}


@router.post("/suggestions")
async def follow_up_suggestions(req: SuggestionsRequest, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    suggestions = await services.conversation.suggest_followups(req.session_id, req.last_message)
    return {"success": True, "suggestions": suggestions}


@router.get("/health")
def chat_health(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    return {
        **services.conversation.health(),
        "active_sessions": services.store.count(),
    }
