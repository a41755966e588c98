from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Type, TypeVar

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from ..config import Settings
from ..domain.errors import ProviderError, ProviderUnavailable
from ..domain.session_models import ConversationContext, CourseIdea, IntentAnalysis
from .prompts import build_system_prompt, ideas_prompt, intent_prompt

# Optional import: langchain-openai
try:
    from langchain_openai import ChatOpenAI  # type: ignore
except Exception:  # pragma: no cover - optional import
    ChatOpenAI = None  # type: ignore


LOG = logging.getLogger("skillup.llm")

T = TypeVar("T")

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class Completion(Protocol):
    async def complete(self, turns: Sequence[Mapping[str, str]]) -> str: ...


class IntentAnalyzer(Protocol):
    async def analyze(self, user_input: str) -> IntentAnalysis: ...


class IdeaGenerator(Protocol):
    async def generate(self, user_input: str, context: Optional[ConversationContext] = None) -> List[CourseIdea]: ...


class CircuitBreaker:
    """Opens after ``threshold`` consecutive failures, closes after ``cooldown`` seconds."""

    def __init__(self, threshold: int = 2, cooldown: float = 120.0) -> None:
        self.threshold = threshold
        self.cooldown = cooldown
        self.fails = 0
        self.opened_at = 0.0

    def is_open(self) -> bool:
        if self.opened_at == 0.0:
            return False
        if time.time() - self.opened_at < self.cooldown:
            return True
        self.fails = 0
        self.opened_at = 0.0
        return False

    def record_fail(self) -> None:
        self.fails += 1
        if self.fails >= self.threshold and self.opened_at == 0.0:
            self.opened_at = time.time()
            LOG.warning(
                "llm_breaker_opened fails=%d cooldown_s=%s",
                self.fails,
                self.cooldown,
                extra={"fails": self.fails, "cooldown_s": self.cooldown},
            )

    def record_success(self) -> None:
        if self.fails or self.opened_at:
            LOG.info("llm_breaker_closed")
        self.fails = 0
        self.opened_at = 0.0


def decode_json(text: str, schema: Type[T] | Any) -> T:
    """Strictly decode a provider response into ``schema``.

    The whole response (optionally wrapped in a Markdown code fence) must be
    valid JSON matching the schema; anything else raises ``ProviderError``.
    """
    raw = (text or "").strip()
    fenced = _FENCE_RE.match(raw)
    if fenced:
        raw = fenced.group(1)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProviderError(f"Provider returned malformed JSON: {exc.msg}") from exc
    try:
        return TypeAdapter(schema).validate_python(payload)
    except PydanticValidationError as exc:
        raise ProviderError(f"Provider response did not match the expected schema: {exc.error_count()} error(s)") from exc


class LangChainCompletion:
    """``Completion`` backed by ``langchain_openai.ChatOpenAI``."""

    def __init__(self, settings: Settings, breaker: Optional[CircuitBreaker] = None) -> None:
        self._settings = settings
        self._breaker = breaker or CircuitBreaker(settings.breaker_threshold, settings.breaker_cooldown_seconds)
        self._llm = None

    @property
    def model(self) -> str:
        return self._settings.openai_model

    @property
    def configured(self) -> bool:
        return ChatOpenAI is not None and bool(self._settings.openai_api_key)

    def _client(self):
        if self._llm is not None:
            return self._llm
        if not ChatOpenAI:
            raise ProviderUnavailable("LLM client not available")
        if not self._settings.openai_api_key:
            raise ProviderUnavailable("LLM not configured: OPENAI_API_KEY is missing")
        self._llm = ChatOpenAI(
            api_key=self._settings.openai_api_key,
            model=self._settings.openai_model,
            temperature=self._settings.llm_temperature,
            max_tokens=self._settings.llm_max_tokens,
        )
        return self._llm

    async def complete(self, turns: Sequence[Mapping[str, str]]) -> str:
        if self._breaker.is_open():
            raise ProviderUnavailable("CourseBot is temporarily unavailable; retry shortly")
        llm = self._client()
        messages = [{"role": t.get("role", "user"), "content": t.get("content", "")} for t in turns]
        started = time.perf_counter()
        try:
            res = await llm.ainvoke(messages)
        except Exception as exc:
            self._breaker.record_fail()
            LOG.warning("llm_invoke_failed model=%s err=%s", self.model, exc)
            raise ProviderError("Failed to get response from CourseBot") from exc
        self._breaker.record_success()
        LOG.debug("llm_invoke_ok model=%s elapsed=%.2fs", self.model, time.perf_counter() - started)
        content = getattr(res, "content", res)
        if not isinstance(content, str):
            raise ProviderError("Provider returned a non-text response")
        return content

    def info(self) -> Dict[str, Any]:
        return {
            "provider": "OpenAI",
            "model": self._settings.openai_model,
            "temperature": self._settings.llm_temperature,
            "max_tokens": self._settings.llm_max_tokens,
            "configured": self.configured,
            "breaker_open": self._breaker.is_open(),
        }


class LLMIntentAnalyzer:
    def __init__(self, completion: Completion) -> None:
        self._completion = completion

    async def analyze(self, user_input: str) -> IntentAnalysis:
        text = await self._completion.complete([{"role": "user", "content": intent_prompt(user_input)}])
        return decode_json(text, IntentAnalysis)


class LLMIdeaGenerator:
    def __init__(self, completion: Completion) -> None:
        self._completion = completion

    async def generate(self, user_input: str, context: Optional[ConversationContext] = None) -> List[CourseIdea]:
        text = await self._completion.complete([{"role": "user", "content": ideas_prompt(user_input, context)}])
        return decode_json(text, List[CourseIdea])


def build_conversation(
    user_message: str,
    history: Sequence[Mapping[str, Any]] = (),
    context: Optional[ConversationContext] = None,
    window: int = 10,
) -> List[Dict[str, str]]:
    """System prompt, the last ``window`` history turns, then the new user message."""
    turns: List[Dict[str, str]] = [{"role": "system", "content": build_system_prompt(context)}]
    recent = list(history)[-window:] if window > 0 else []
    for turn in recent:
        role = turn.get("role") if isinstance(turn, Mapping) else getattr(turn, "role", None)
        content = turn.get("content") if isinstance(turn, Mapping) else getattr(turn, "content", None)
        if role not in ("system", "user", "assistant") or not isinstance(content, str):
            continue
        turns.append({"role": role, "content": content})
    turns.append({"role": "user", "content": user_message})
    return turns
