from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from ..core.context_merger import apply_analysis, apply_update, initial_context
from ..core.state_machine import is_valid_transition
from ..domain.errors import NotFound, ValidationError
from ..domain.session_models import (
    ContextUpdate,
    ConversationContext,
    ConversationSession,
    CourseIdea,
    SessionStats,
    SessionSummary,
    Turn,
)
from ..observability.metrics import SESSIONS_CREATED, SESSIONS_EVICTED

logger = logging.getLogger("skillup.sessions")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class _SessionRecord:
    session_id: str
    user_id: Optional[str]
    context: ConversationContext
    created_at: datetime
    updated_at: datetime
    last_activity: datetime
    message_count: int = 0
    history: List[Turn] = field(default_factory=list)


class _KeyLock:
    __slots__ = ("lock", "owner", "depth", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.owner: Optional[asyncio.Task] = None
        self.depth = 0
        self.users = 0


class KeyedLocks:
    """Per-key asyncio locks, re-entrant for the task that holds them.

    Entries exist only while some task holds or waits on the key.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, _KeyLock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_held(self, key: str) -> bool:
        entry = self._locks.get(key)
        return bool(entry and entry.lock.locked())

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        task = asyncio.current_task()
        entry = self._locks.get(key)
        if entry is not None and task is not None and entry.owner is task:
            entry.depth += 1
            try:
                yield
            finally:
                entry.depth -= 1
            return

        entry = self._locks.setdefault(key, _KeyLock())
        entry.users += 1
        try:
            await entry.lock.acquire()
            entry.owner = task
            entry.depth = 1
            try:
                yield
            finally:
                entry.owner = None
                entry.depth = 0
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(key) is entry:
                del self._locks[key]


class SessionStore:
    """TTL-bounded in-memory conversation sessions with a per-user index."""

    def __init__(
        self,
        *,
        ttl_seconds: int = 24 * 60 * 60,
        max_history: int = 50,
        clock: Optional[Clock] = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_history <= 0:
            raise ValueError("max_history must be positive")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_history = max_history
        self._clock: Clock = clock or utcnow
        self._sessions: Dict[str, _SessionRecord] = {}
        self._by_user: Dict[str, Dict[str, None]] = {}
        self._locks = KeyedLocks()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    # ----------------------------------------------------------------- helpers

    def _now(self) -> datetime:
        return self._clock()

    def _is_expired(self, record: _SessionRecord, now: Optional[datetime] = None) -> bool:
        return (now or self._now()) >= record.last_activity + self._ttl

    def _live(self, session_id: str) -> Optional[_SessionRecord]:
        record = self._sessions.get(session_id)
        if record is None or self._is_expired(record):
            return None
        return record

    def _require(self, session_id: str) -> _SessionRecord:
        record = self._live(session_id)
        if record is None:
            raise NotFound("Session", session_id)
        return record

    def _index(self, record: _SessionRecord) -> None:
        if record.user_id:
            self._by_user.setdefault(record.user_id, {})[record.session_id] = None

    def _unindex(self, session_id: str, user_id: Optional[str]) -> None:
        if not user_id:
            return
        ids = self._by_user.get(user_id)
        if ids is None:
            return
        ids.pop(session_id, None)
        if not ids:
            self._by_user.pop(user_id, None)

    def _evict(self, record: _SessionRecord) -> None:
        if self._sessions.get(record.session_id) is record:
            del self._sessions[record.session_id]
        self._unindex(record.session_id, record.user_id)

    def _touch(self, record: _SessionRecord) -> None:
        now = self._now()
        record.last_activity = now
        record.updated_at = now

    def _trim_history(self, record: _SessionRecord) -> None:
        overflow = len(record.history) - self._max_history
        if overflow > 0:
            del record.history[:overflow]

    def _session_model(self, record: _SessionRecord) -> ConversationSession:
        return ConversationSession(
            session_id=record.session_id,
            user_id=record.user_id,
            context=record.context.model_copy(deep=True),
            history=[turn.model_copy(deep=True) for turn in record.history],
            message_count=record.message_count,
            created_at=record.created_at,
            updated_at=record.updated_at,
            last_activity=record.last_activity,
        )

    def _summary_model(self, record: _SessionRecord) -> SessionSummary:
        return SessionSummary(
            session_id=record.session_id,
            user_id=record.user_id,
            conversation_stage=record.context.conversation_stage,
            identified_topics=list(record.context.identified_topics),
            suggested_courses_count=len(record.context.suggested_courses),
            last_activity=record.last_activity,
            message_count=record.message_count,
        )

    @staticmethod
    def _coerce_update(update: ContextUpdate | Mapping[str, Any] | None) -> Optional[ContextUpdate]:
        if update is None or isinstance(update, ContextUpdate):
            return update
        try:
            return ContextUpdate.model_validate(dict(update))
        except (PydanticValidationError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid context: {exc}") from exc

    # ------------------------------------------------------------------ public

    def hold(self, session_id: str):
        """Critical section for ``session_id``; callers may await inside it."""
        return self._locks.hold(session_id)

    def count(self) -> int:
        now = self._now()
        return sum(1 for record in self._sessions.values() if not self._is_expired(record, now))

    async def get_or_create(
        self,
        session_id: str,
        user_id: Optional[str] = None,
        initial: ContextUpdate | Mapping[str, Any] | None = None,
    ) -> ConversationSession:
        if not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("Session ID is required and must be a string")
        update = self._coerce_update(initial)
        async with self.hold(session_id):
            record = self._sessions.get(session_id)
            if record is not None and self._is_expired(record):
                logger.info("session_expired_on_access session=%s", session_id)
                self._evict(record)
                SESSIONS_EVICTED.inc()
                record = None
            if record is not None:
                self._touch(record)
                if user_id and not record.user_id:
                    record.user_id = user_id
                    self._index(record)
                elif user_id and record.user_id != user_id:
                    logger.warning(
                        "session_owner_mismatch session=%s owner=%s requested=%s",
                        session_id,
                        record.user_id,
                        user_id,
                    )
                return self._session_model(record)

            now = self._now()
            record = _SessionRecord(
                session_id=session_id,
                user_id=user_id or None,
                context=initial_context(update),
                created_at=now,
                updated_at=now,
                last_activity=now,
            )
            self._sessions[session_id] = record
            self._index(record)
            SESSIONS_CREATED.inc()
            logger.info("session_created session=%s user=%s", session_id, user_id)
            return self._session_model(record)

    async def get_session(self, session_id: str) -> ConversationSession:
        return self._session_model(self._require(session_id))

    async def get_history(self, session_id: str, limit: Optional[int] = None) -> List[Turn]:
        if limit is not None and limit < 1:
            raise ValidationError("limit must be a positive integer")
        record = self._require(session_id)
        turns = record.history[-limit:] if limit else record.history
        return [turn.model_copy(deep=True) for turn in turns]

    async def get_context(self, session_id: str) -> ConversationContext:
        return self._require(session_id).context.model_copy(deep=True)

    async def update_context(
        self,
        session_id: str,
        update: ContextUpdate | Mapping[str, Any],
    ) -> ConversationSession:
        partial = self._coerce_update(update)
        if partial is None:
            raise ValidationError("Context is required and must be an object")
        async with self.hold(session_id):
            record = self._require(session_id)
            current = record.context.conversation_stage
            if partial.conversation_stage and not is_valid_transition(current, partial.conversation_stage):
                logger.info(
                    "session_stage_override session=%s from=%s to=%s",
                    session_id,
                    current,
                    partial.conversation_stage,
                )
            record.context = apply_update(record.context, partial)
            self._touch(record)
            return self._session_model(record)

    async def record_turn(
        self,
        session_id: str,
        *,
        user_message: str,
        assistant_reply: str,
        intent: Optional[str] = None,
        topics: Iterable[str] = (),
        ideas: Iterable[CourseIdea] = (),
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ConversationSession:
        """Commit one accepted chat turn: both messages plus the merged analysis."""
        topics = list(topics)
        async with self.hold(session_id):
            record = self._require(session_id)
            now = self._now()
            user_meta = {"intent": intent, "topics": topics}
            if metadata:
                user_meta.update(metadata)
            record.history.append(Turn(role="user", content=user_message, timestamp=now, metadata=user_meta))
            record.history.append(Turn(role="assistant", content=assistant_reply, timestamp=now))
            self._trim_history(record)
            record.message_count += 1
            record.context = apply_analysis(record.context, intent=intent, topics=topics, ideas=ideas)
            self._touch(record)
            return self._session_model(record)

    async def list_by_user(self, user_id: str) -> List[SessionSummary]:
        ids = list(self._by_user.get(user_id, {}))
        out: List[SessionSummary] = []
        for sid in ids:
            record = self._live(sid)
            if record is None or record.user_id != user_id:
                self._unindex(sid, user_id)
                continue
            out.append(self._summary_model(record))
        # Most recent activity first
        return sorted(out, key=lambda s: s.last_activity, reverse=True)

    async def delete(self, session_id: str) -> bool:
        async with self.hold(session_id):
            record = self._sessions.get(session_id)
            if record is None:
                return False
            self._evict(record)
            logger.info("session_deleted session=%s", session_id)
            return True

    async def stats(self, session_id: str) -> SessionStats:
        record = self._require(session_id)
        duration = max(0.0, (self._now() - record.created_at).total_seconds())
        return SessionStats(
            message_count=record.message_count,
            duration_seconds=duration,
            duration_minutes=int(duration // 60),
            conversation_stage=record.context.conversation_stage,
            identified_topics_count=len(record.context.identified_topics),
            suggested_courses_count=len(record.context.suggested_courses),
        )

    async def export_snapshot(self, session_id: str) -> ConversationSession:
        return self._session_model(self._require(session_id))

    async def import_snapshot(self, snapshot: ConversationSession | Mapping[str, Any]) -> ConversationSession:
        """Replace (or create) the record wholesale from ``snapshot``.

        ``created_at`` and turn timestamps are kept; ``last_activity`` and
        ``updated_at`` are set to the import time.
        """
        if not isinstance(snapshot, ConversationSession):
            try:
                snapshot = ConversationSession.model_validate(dict(snapshot))
            except (PydanticValidationError, TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid session snapshot: {exc}") from exc
        session_id = snapshot.session_id
        async with self.hold(session_id):
            previous = self._sessions.get(session_id)
            if previous is not None:
                self._unindex(session_id, previous.user_id)
            now = self._now()
            record = _SessionRecord(
                session_id=session_id,
                user_id=snapshot.user_id or None,
                context=snapshot.context.model_copy(deep=True),
                created_at=snapshot.created_at,
                updated_at=now,
                last_activity=now,
                message_count=snapshot.message_count,
                history=[turn.model_copy(deep=True) for turn in snapshot.history],
            )
            self._trim_history(record)
            self._sessions[session_id] = record
            self._index(record)
            logger.info("session_imported session=%s replaced=%s", session_id, previous is not None)
            return self._session_model(record)

    async def sweep_expired(self) -> int:
        evicted = 0
        for session_id in list(self._sessions):
            record = self._sessions.get(session_id)
            if record is None or not self._is_expired(record):
                continue
            async with self.hold(session_id):
                # Re-check: a concurrent get_or_create may have refreshed it
                record = self._sessions.get(session_id)
                if record is None or not self._is_expired(record):
                    continue
                self._evict(record)
                evicted += 1
        # Drop index entries whose session is gone
        for user_id in list(self._by_user):
            for sid in list(self._by_user.get(user_id, {})):
                if sid not in self._sessions:
                    self._unindex(sid, user_id)
        if evicted:
            SESSIONS_EVICTED.inc(evicted)
            logger.info("sessions_swept evicted=%d remaining=%d", evicted, len(self._sessions))
        return evicted
