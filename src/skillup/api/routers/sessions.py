from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ...domain.session_models import (
    ConversationContext,
    ConversationSession,
    SessionCreate,
    SessionImport,
    SessionStats,
    SessionSummary,
    Turn,
)
from ..deps import get_services
from ...services.bootstrap import AppServices

router = APIRouter(prefix="/chat/sessions", tags=["sessions"])


@router.post("", response_model=ConversationSession)
async def create_or_get_session(req: SessionCreate, services: AppServices = Depends(get_services)) -> ConversationSession:
    return await services.store.get_or_create(req.session_id, req.user_id, req.initial_context)


@router.post("/import", response_model=ConversationSession, status_code=status.HTTP_201_CREATED)
async def import_session(req: SessionImport, services: AppServices = Depends(get_services)) -> ConversationSession:
    return await services.store.import_snapshot(req.session)


@router.post("/cleanup")
async def cleanup_sessions(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    report = await services.cleaner.sweep()
    return {"success": True, **report.as_dict()}


# Declared before /{session_id} routes so "user" is not taken as an id
@router.get("/user/{user_id}", response_model=List[SessionSummary])
async def list_user_sessions(user_id: str, services: AppServices = Depends(get_services)) -> List[SessionSummary]:
    return await services.store.list_by_user(user_id)


@router.get("/{session_id}/history", response_model=List[Turn])
async def get_history(
    session_id: str,
    limit: Optional[int] = Query(None, description="Most recent turns to return"),
    services: AppServices = Depends(get_services),
) -> List[Turn]:
    return await services.store.get_history(session_id, limit)


@router.get("/{session_id}/context", response_model=ConversationContext)
async def get_context(session_id: str, services: AppServices = Depends(get_services)) -> ConversationContext:
    return await services.store.get_context(session_id)


@router.put("/{session_id}/context", response_model=ConversationContext)
async def update_context(
    session_id: str,
    context: Dict[str, Any] = Body(..., embed=True),
    services: AppServices = Depends(get_services),
) -> ConversationContext:
    session = await services.store.update_context(session_id, context)
    return session.context


@router.get("/{session_id}/stats", response_model=SessionStats)
async def get_stats(session_id: str, services: AppServices = Depends(get_services)) -> SessionStats:
    return await services.store.stats(session_id)


@router.get("/{session_id}/export", response_model=ConversationSession)
async def export_session(session_id: str, services: AppServices = Depends(get_services)) -> ConversationSession:
    return await services.store.export_snapshot(session_id)


@router.delete("/{session_id}")
async def delete_session(session_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    deleted = await services.store.delete(session_id)
    return {"success": True, "deleted": deleted}
