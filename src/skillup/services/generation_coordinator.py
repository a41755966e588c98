from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from ..domain.errors import ChannelClosed, NotFound, SkillUpError, ValidationError
from ..domain.generation_models import Frame, GenerationRequest, JobState, JobStatus
from ..infrastructure.events import EventBus
from ..observability.metrics import JOBS_ACTIVE, JOBS_FINISHED
from .course_workflow import GenerationWorkflow, JobReporter
from .realtime_channel import ChannelRegistry, make_frame
from .telemetry_sink import TelemetrySink

logger = logging.getLogger("skillup.generation")


def _failure_message(exc: BaseException) -> str:
    return f"Generation failed: {exc}" if str(exc) else f"Generation failed: {type(exc).__name__}"


@dataclass
class _Job:
    job_id: str
    request: GenerationRequest
    created_at: datetime
    last_queried_at: float
    status: JobState = "running"
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    last_frame: Optional[Frame] = None
    finished_at: Optional[datetime] = None


class GenerationSessionCoordinator:
    """Runs course-generation jobs in the background and streams their frames."""

    def __init__(
        self,
        workflow: GenerationWorkflow,
        channels: ChannelRegistry,
        *,
        events: Optional[EventBus] = None,
        retention_seconds: float = 900.0,
        timeout_seconds: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
        telemetry: Optional[TelemetrySink] = None,
    ) -> None:
        self._workflow = workflow
        self._channels = channels
        self._events = events or EventBus()
        self._retention = retention_seconds
        self._timeout = timeout_seconds
        self._clock = clock or time.monotonic
        self._telemetry = telemetry or TelemetrySink()
        self._jobs: Dict[str, _Job] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def channels(self) -> ChannelRegistry:
        return self._channels

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            self._events.publish_event(event_type, payload)
        except Exception:
            logger.warning("event_publish_failed type=%s", event_type, exc_info=True)

    async def start(self, request: GenerationRequest | Mapping[str, Any]) -> str:
        if not isinstance(request, GenerationRequest):
            try:
                request = GenerationRequest.model_validate(dict(request))
            except (PydanticValidationError, TypeError, ValueError) as exc:
                raise ValidationError("Course topic is required") from exc
        if not request.course_topic.strip():
            raise ValidationError("Course topic is required")

        job_id = uuid.uuid4().hex
        job = _Job(
            job_id=job_id,
            request=request,
            created_at=datetime.now(UTC),
            last_queried_at=self._clock(),
        )
        self._jobs[job_id] = job
        self._channels.open(job_id)
        JOBS_ACTIVE.inc()

        task = asyncio.get_running_loop().create_task(self._drive(job), name=f"generation-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info("generation_started job=%s topic=%s", job_id, request.course_topic)
        self._emit("generation.started", {
            "job_id": job_id,
            "course_topic": request.course_topic,
            "user_id": request.user_id,
        })
        self._telemetry.record("generation_started", actor=request.user_id, job_id=job_id)
        return job_id

    async def _drive(self, job: _Job) -> None:
        try:
            await self._run(job)
        finally:
            # An error inside the outcome handlers still ends the job
            if job.status == "running":
                self._fail(job, "Generation failed")

    async def _run(self, job: _Job) -> None:
        reporter = JobReporter(self._channels, job.job_id)
        watchdog = asyncio.timeout(self._timeout or None)
        try:
            async with watchdog:
                result = await self._workflow.run(job.request, reporter)
        except asyncio.CancelledError:
            self._fail(job, "Generation was cancelled")
            raise
        except TimeoutError as exc:
            if not watchdog.expired():
                # Raised by the workflow or provider, not the watchdog
                logger.exception("generation_crashed job=%s", job.job_id)
                self._fail(job, _failure_message(exc))
            else:
                self._fail(job, f"Generation timed out after {self._timeout:g} seconds")
        except SkillUpError as exc:
            self._fail(job, exc.message)
        except Exception as exc:
            logger.exception("generation_crashed job=%s", job.job_id)
            self._fail(job, _failure_message(exc))
        else:
            if not isinstance(result, Mapping):
                self._fail(job, "Generation produced no result")
                return
            self._succeed(job, dict(result))

    def _publish_terminal(self, job: _Job, frame: Frame) -> None:
        try:
            job.last_frame = self._channels.publish(job.job_id, frame, terminal=True)
        except (ChannelClosed, NotFound):
            # Channel already gone; the job record still carries the outcome
            logger.warning("terminal_frame_dropped job=%s type=%s", job.job_id, frame.type)
            job.last_frame = frame

    def _finish(self, job: _Job, status: JobState) -> None:
        job.status = status
        job.finished_at = datetime.now(UTC)
        job.last_queried_at = self._clock()
        JOBS_ACTIVE.dec()
        JOBS_FINISHED.labels(status=status).inc()

    def _succeed(self, job: _Job, result: Dict[str, Any]) -> None:
        if job.status != "running":
            return
        if not result.get("course_id"):
            self._fail(job, "Generation produced no course id")
            return
        data = {
            "course_id": result.get("course_id"),
            "course": result.get("course"),
            "summary": result.get("summary"),
        }
        job.result = data
        self._publish_terminal(job, make_frame("success", data.get("summary") or "Course generated", data))
        self._finish(job, "succeeded")
        logger.info("generation_succeeded job=%s course=%s", job.job_id, data["course_id"])
        self._emit("generation.succeeded", {"job_id": job.job_id, "course_id": data["course_id"]})
        self._telemetry.record("generation_succeeded", actor=job.request.user_id, job_id=job.job_id)

    def _fail(self, job: _Job, message: str) -> None:
        if job.status != "running":
            return
        message = message or "Generation failed"
        job.error = message
        self._publish_terminal(job, make_frame("error", message))
        self._finish(job, "failed")
        logger.warning("generation_failed job=%s error=%s", job.job_id, message)
        self._emit("generation.failed", {"job_id": job.job_id, "error": message})
        self._telemetry.record("generation_failed", actor=job.request.user_id, job_id=job.job_id, error=message)

    def _expired(self, job: _Job, now: float) -> bool:
        return job.status != "running" and now - job.last_queried_at >= self._retention

    def status(self, job_id: str) -> JobStatus:
        job = self._jobs.get(job_id)
        now = self._clock()
        if job is None or self._expired(job, now):
            raise NotFound("Job", job_id)
        job.last_queried_at = now
        last = job.last_frame if job.status != "running" else self._channels.last_frame(job_id)
        return JobStatus(
            job_id=job.job_id,
            status=job.status,
            last_frame=last,
            result=job.result,
            error=job.error,
            created_at=job.created_at,
            finished_at=job.finished_at,
        )

    def list_active(self) -> List[str]:
        return [job_id for job_id, job in self._jobs.items() if job.status == "running"]

    def prune_finished(self) -> int:
        now = self._clock()
        pruned = 0
        for job_id, job in list(self._jobs.items()):
            if not self._expired(job, now):
                continue
            del self._jobs[job_id]
            self._channels.discard(job_id)
            pruned += 1
        if pruned:
            logger.info("jobs_pruned count=%d", pruned)
        return pruned

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled before their first step never reach _drive's handlers
        for job in list(self._jobs.values()):
            if job.status == "running":
                self._fail(job, "Generation was cancelled")
        if tasks:
            logger.info("generation_shutdown cancelled=%d", len(tasks))
