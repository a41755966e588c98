from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Optional

from dotenv import load_dotenv
import logging
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .errors import install_error_handlers
from .routers.chat import router as chat_router
from .routers.generation import router as generation_router
from .routers.sessions import router as sessions_router
from ..observability.metrics import metrics_middleware_factory
from ..services.bootstrap import AppServices, build_services

load_dotenv()  # Load environment variables from .env if present (OPENAI_API_KEY, SKILLUP_*, REDIS_URL)

logger = logging.getLogger("skillup.api")

API_NAME = "SkillUp Course Authoring API"
API_VERSION = "0.1.0"


def _health_payload(services: AppServices) -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "sessions": "in-memory",
            "active_sessions": services.store.count(),
            "active_jobs": len(services.coordinator.list_active()),
            "events": "redis" if services.events.enabled else "disabled",
        },
    }


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services.cleaner.start()
        try:
            yield
        finally:
            await app.state.services.cleaner.stop()
            await app.state.services.coordinator.shutdown()

    app = FastAPI(title=API_NAME, version=API_VERSION, lifespan=lifespan)
    app.state.services = services

    # Observability: request latency histogram
    app.middleware("http")(metrics_middleware_factory())
    install_error_handlers(app)

    # Routers, also exposed under /api
    for router in (sessions_router, chat_router, generation_router):
        app.include_router(router)
        app.include_router(router, prefix="/api")

    # CORS (for the web client dev server on localhost:3000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    @app.get("/api")
    def root():
        return {"name": API_NAME, "version": API_VERSION}

    @app.get("/health")
    @app.get("/api/health")
    def health(request: Request):
        return _health_payload(request.app.state.services)

    @app.get("/metrics")
    @app.get("/api/metrics")
    def metrics() -> Response:
        # Expose Prometheus metrics
        data = generate_latest(REGISTRY)
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    logger.info("app_created redis=%s cleanup_interval_s=%s", services.events.enabled, services.settings.cleanup_interval_seconds)
    return app


app = create_app()
