from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.responses import StreamingResponse

from ...domain.errors import NotFound
from ...domain.generation_models import GenerationRequest, GenerationStarted, JobStatus
from ...services.bootstrap import AppServices
from ...services.realtime_channel import QueueSubscriber
from ..deps import get_services

router = APIRouter(prefix="/generation", tags=["generation"])
logger = logging.getLogger("skillup.api")


@router.post("/generate", response_model=GenerationStarted, status_code=status.HTTP_202_ACCEPTED)
async def start_generation(req: GenerationRequest, services: AppServices = Depends(get_services)) -> GenerationStarted:
    job_id = await services.coordinator.start(req)
    return GenerationStarted(job_id=job_id)


@router.get("/jobs")
def list_active_jobs(services: AppServices = Depends(get_services)) -> Dict[str, List[str]]:
    return {"jobs": services.coordinator.list_active()}


@router.get("/jobs/{job_id}/status", response_model=JobStatus)
def job_status(job_id: str, services: AppServices = Depends(get_services)) -> JobStatus:
    return services.coordinator.status(job_id)


@router.get("/jobs/{job_id}/stream", response_class=StreamingResponse)
async def stream_job(job_id: str, services: AppServices = Depends(get_services)):
    channels = services.channels
    subscriber = QueueSubscriber()
    # Raises NotFound (404) before the response starts
    channels.subscribe(job_id, subscriber)

    async def event_stream():  # --- skillup-stream ---
        try:
            async for frame in subscriber:
                yield f"data: {json.dumps(frame.model_dump())}\n\n"
        finally:
            channels.unsubscribe(job_id, subscriber)

    headers = {
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache, no-transform",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers=headers,
    )


@router.websocket("/ws/{job_id}")
async def job_socket(websocket: WebSocket, job_id: str) -> None:
    services: AppServices = get_services(websocket)
    channels = services.channels
    await websocket.accept()
    subscriber = QueueSubscriber()
    try:
        channels.subscribe(job_id, subscriber)
    except NotFound as exc:
        await websocket.close(code=4404, reason=exc.message)
        return

    logger.debug("ws_connected job=%s", job_id)
    try:
        async for frame in subscriber:
            await websocket.send_json(frame.model_dump())
    except WebSocketDisconnect:
        logger.debug("ws_disconnected job=%s", job_id)
        return
    finally:
        channels.unsubscribe(job_id, subscriber)
    await websocket.close(code=1000)
