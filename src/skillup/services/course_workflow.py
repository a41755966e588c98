"""Default course-generation workflow: outline, lessons per part, save."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol

from ..domain.errors import ChannelClosed, NotFound
from ..domain.generation_models import CourseLesson, CourseStructure, GenerationRequest
from .chat_ai import Completion, decode_json
from .prompts import lessons_prompt, outline_prompt
from .realtime_channel import ChannelRegistry, make_frame

logger = logging.getLogger("skillup.generation")


class CourseRepository(Protocol):
    async def save_course(self, structure: CourseStructure, user_id: Optional[str]) -> str: ...


class InMemoryCourseRepository:
    """Keeps saved courses in a dict; stands in for the relational store."""

    def __init__(self) -> None:
        self._courses: Dict[str, Dict[str, Any]] = {}

    async def save_course(self, structure: CourseStructure, user_id: Optional[str]) -> str:
        course_id = uuid.uuid4().hex
        self._courses[course_id] = {
            "user_id": user_id,
            "course": structure.model_copy(deep=True),
        }
        return course_id

    def get(self, course_id: str) -> Optional[CourseStructure]:
        entry = self._courses.get(course_id)
        return entry["course"] if entry else None

    def __len__(self) -> int:
        return len(self._courses)


class JobReporter:
    """Publishes non-terminal frames for one job.

    A frame arriving after the channel closed is logged and dropped.
    """

    def __init__(self, channels: ChannelRegistry, job_id: str) -> None:
        self._channels = channels
        self.job_id = job_id

    def _emit(self, frame_type: str, message: str, data: Optional[Dict[str, Any]]) -> None:
        try:
            self._channels.publish(self.job_id, make_frame(frame_type, message, data), terminal=False)
        except (ChannelClosed, NotFound):
            logger.debug("late_frame_dropped job=%s type=%s", self.job_id, frame_type)

    def log(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._emit("log", message, data)

    def progress(self, message: str, percent: Optional[float] = None, data: Optional[Dict[str, Any]] = None) -> None:
        payload = dict(data or {})
        if percent is not None:
            payload["percent"] = round(float(percent), 1)
        self._emit("progress", message, payload or None)


class GenerationWorkflow(Protocol):
    async def run(self, request: GenerationRequest, reporter: JobReporter) -> Dict[str, Any]: ...


class CourseGenerationWorkflow:
    """Builds a course from the model alone.

    ``search_web`` is accepted but no search provider is wired in; the job
    logs that and generates without external sources.
    """

    def __init__(self, completion: Completion, repository: CourseRepository) -> None:
        self._completion = completion
        self._repository = repository

    async def _ask(self, prompt: str) -> str:
        return await self._completion.complete([{"role": "user", "content": prompt}])

    async def run(self, request: GenerationRequest, reporter: JobReporter) -> Dict[str, Any]:
        reporter.log(f"Starting course generation for: {request.course_topic}")
        if request.search_web:
            reporter.log("Web research requested; continuing without external sources")

        reporter.progress("Designing course outline", 5)
        outline = decode_json(await self._ask(outline_prompt(request.course_topic)), CourseStructure)
        if not outline.parts:
            reporter.log("Outline contained no parts")
        reporter.log(f"Outline ready: {outline.title}", {"parts": len(outline.parts)})

        total = max(len(outline.parts), 1)
        parts = []
        for index, part in enumerate(outline.parts, start=1):
            reporter.progress(f"Writing lessons for part {part.part_number}: {part.title}", 10 + 80 * (index - 1) / total)
            text = await self._ask(lessons_prompt(outline.title, part.title, part.description))
            lessons: List[CourseLesson] = decode_json(text, List[CourseLesson])
            parts.append(part.model_copy(update={"lessons": lessons}))
            reporter.log(f"Part {part.part_number} complete", {"lessons": len(lessons)})

        course = outline.model_copy(update={"parts": parts})
        reporter.progress("Saving course", 95)
        course_id = await self._repository.save_course(course, request.user_id)
        lesson_count = sum(len(p.lessons) for p in course.parts)
        summary = f"Created '{course.title}' with {len(course.parts)} parts and {lesson_count} lessons"
        logger.info("course_saved course=%s parts=%d lessons=%d", course_id, len(course.parts), lesson_count)
        return {
            "course_id": course_id,
            "course": course.model_dump(),
            "summary": summary,
        }
