from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from src.skillup.config import Settings
from src.skillup.domain.errors import ProviderError
from src.skillup.services.bootstrap import AppServices, build_services

# Substrings identifying which prompt a completion call carries
PROMPT_MARKERS = {
    "intent": "Analyze the following user input",
    "ideas": "generate 3 specific course ideas",
    "suggestions": "suggest 3-5 follow-up",
    "outline": "Design a course outline",
    "lessons": "List 3 to 5 lessons",
}


class FakeClock:
    """Controllable wall clock for SessionStore."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def intent_json(intent: str = "general_inquiry", topics: Sequence[str] = (), sentiment: str = "neutral") -> str:
    return json.dumps({
        "intent": intent,
        "entities": [{"type": "skill", "value": t, "confidence": 0.9} for t in topics],
        "sentiment": sentiment,
        "topics": list(topics),
    })


def idea(title: str = "SEO Fundamentals", **overrides: Any) -> Dict[str, Any]:
    payload = {
        "title": title,
        "description": f"{title} for busy professionals",
        "target_audience": "Small business owners",
        "difficulty_level": "beginner",
        "estimated_duration": "4 weeks",
        "key_topics": ["keywords", "on-page"],
        "market_potential": "high",
        "prerequisites": [],
    }
    payload.update(overrides)
    return payload


def outline_json(title: str = "Digital Marketing 101", parts: int = 2) -> str:
    return json.dumps({
        "title": title,
        "description": "A practical introduction",
        "target_audience": "Beginners",
        "prerequisites": [],
        "total_duration": "6 weeks",
        "parts": [
            {"part_number": n, "title": f"Part {n}", "description": f"Part {n} overview", "learning_goals": ["goal"], "lessons": []}
            for n in range(1, parts + 1)
        ],
    })


def lessons_json(count: int = 3) -> str:
    return json.dumps([
        {"lesson_number": n, "title": f"Lesson {n}", "description": f"Lesson {n} body"}
        for n in range(1, count + 1)
    ])


class FakeCompletion:
    """Completion that answers by prompt kind and records every call."""

    def __init__(
        self,
        responses: Optional[Mapping[str, str]] = None,
        *,
        reply: str = "Tell me more about your experience.",
        fail_on: Sequence[str] = (),
    ) -> None:
        self.responses = dict(responses or {})
        self.reply = reply
        self.fail_on = set(fail_on)
        self.calls: List[List[Dict[str, str]]] = []

    def kind_of(self, turns: Sequence[Mapping[str, str]]) -> str:
        text = turns[-1].get("content", "") if turns else ""
        for kind, marker in PROMPT_MARKERS.items():
            if marker in text:
                return kind
        return "reply"

    async def complete(self, turns: Sequence[Mapping[str, str]]) -> str:
        self.calls.append([dict(t) for t in turns])
        kind = self.kind_of(turns)
        if kind in self.fail_on:
            raise ProviderError(f"fake {kind} failure")
        if kind == "reply":
            return self.reply
        if kind in self.responses:
            return self.responses[kind]
        if kind == "intent":
            return intent_json()
        if kind == "ideas":
            return json.dumps([idea()])
        if kind == "suggestions":
            return json.dumps(["What is your audience?"])
        if kind == "outline":
            return outline_json()
        return lessons_json()

    def calls_of(self, kind: str) -> List[List[Dict[str, str]]]:
        return [c for c in self.calls if self.kind_of(c) == kind]


class FakeWorkflow:
    """Workflow emitting a couple of frames, then returning or raising."""

    def __init__(self, *, error: Optional[BaseException] = None, gate: Optional[asyncio.Event] = None) -> None:
        self.error = error
        self.gate = gate
        self.requests: List[Any] = []

    async def run(self, request, reporter) -> Dict[str, Any]:
        self.requests.append(request)
        reporter.log(f"Starting {request.course_topic}")
        reporter.progress("Halfway", 50)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return {
            "course_id": "course-1",
            "course": {"title": request.course_topic},
            "summary": f"Created '{request.course_topic}'",
        }


def make_services(
    *,
    completion: Optional[FakeCompletion] = None,
    workflow: Any = None,
    clock: Optional[FakeClock] = None,
    monotonic: Optional[FakeMonotonic] = None,
    **settings: Any,
) -> AppServices:
    settings.setdefault("cleanup_interval_seconds", 0.0)
    return build_services(
        Settings(**settings),
        completion=completion or FakeCompletion(),
        workflow=workflow,
        clock=clock,
        monotonic=monotonic,
    )
