from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import Settings
from ..infrastructure.events import EventBus
from ..infrastructure.session_store import Clock, SessionStore
from .chat_ai import Completion, LangChainCompletion, LLMIdeaGenerator, LLMIntentAnalyzer
from .conversation_service import ConversationService
from .course_workflow import CourseGenerationWorkflow, GenerationWorkflow, InMemoryCourseRepository
from .generation_coordinator import GenerationSessionCoordinator
from .realtime_channel import ChannelRegistry
from .session_cleaner import SessionLifecycleCleaner
from .telemetry_sink import TelemetrySink

logger = logging.getLogger("skillup")


@dataclass
class AppServices:
    settings: Settings
    store: SessionStore
    channels: ChannelRegistry
    coordinator: GenerationSessionCoordinator
    conversation: ConversationService
    cleaner: SessionLifecycleCleaner
    events: EventBus
    telemetry: TelemetrySink


def build_services(
    settings: Optional[Settings] = None,
    *,
    completion: Optional[Completion] = None,
    workflow: Optional[GenerationWorkflow] = None,
    clock: Optional[Clock] = None,
    monotonic: Optional[Callable[[], float]] = None,
) -> AppServices:
    """Wire every collaborator once; tests pass fakes for the provider edges."""
    settings = settings or Settings.from_env()
    completion = completion or LangChainCompletion(settings)
    events = EventBus.from_url(settings.redis_url)
    telemetry = TelemetrySink()

    store = SessionStore(
        ttl_seconds=settings.session_ttl_seconds,
        max_history=settings.max_history,
        clock=clock,
    )
    channels = ChannelRegistry(
        buffer_size=settings.channel_buffer_size,
        grace_seconds=settings.channel_grace_seconds,
        clock=monotonic,
    )
    coordinator = GenerationSessionCoordinator(
        workflow or CourseGenerationWorkflow(completion, InMemoryCourseRepository()),
        channels,
        events=events,
        retention_seconds=settings.job_retention_seconds,
        timeout_seconds=settings.job_timeout_seconds,
        clock=monotonic,
        telemetry=telemetry,
    )
    conversation = ConversationService(
        store,
        completion,
        LLMIntentAnalyzer(completion),
        LLMIdeaGenerator(completion),
        prompt_history=settings.prompt_history,
        telemetry=telemetry,
    )
    cleaner = SessionLifecycleCleaner(
        store,
        coordinator,
        channels,
        interval_seconds=settings.cleanup_interval_seconds,
        telemetry=telemetry,
    )
    logger.debug("services_built redis=%s", events.enabled)
    return AppServices(
        settings=settings,
        store=store,
        channels=channels,
        coordinator=coordinator,
        conversation=conversation,
        cleaner=cleaner,
        events=events,
        telemetry=telemetry,
    )
