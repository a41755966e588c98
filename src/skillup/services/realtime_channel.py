"""Per-job realtime channels.

A channel keeps a bounded buffer of recent frames and fans each published
frame out to its current subscribers in publish order. Subscribers that join
late get the retained buffer replayed first. A terminal frame closes the
channel; the buffer then stays readable for a grace period before being
discarded.

Everything here is synchronous and in-memory. A cross-instance
implementation only needs to provide the same methods.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

from ..domain.errors import ChannelClosed, NotFound
from ..domain.generation_models import Frame, FrameType
from ..observability.metrics import CHANNEL_SUBSCRIBERS, FRAMES_PUBLISHED

logger = logging.getLogger("skillup.realtime")

TERMINAL_TYPES = frozenset({"success", "job_complete"})


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def make_frame(frame_type: FrameType, message: str, data: Optional[Dict[str, Any]] = None) -> Frame:
    return Frame(type=frame_type, message=message, data=data, timestamp=_now_iso())


class Subscriber(Protocol):
    def deliver(self, frame: Frame) -> None: ...

    def end(self) -> None: ...


# --- skillup-stream ---
class QueueSubscriber:
    """Subscriber backed by an unbounded asyncio queue; iterate it to consume frames."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[Frame]] = asyncio.Queue()
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    def deliver(self, frame: Frame) -> None:
        if self._ended:
            return
        self._queue.put_nowait(frame)

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._queue.put_nowait(None)

    def drain(self) -> List[Frame]:
        """Return every queued frame without waiting."""
        out: List[Frame] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return out
            if item is None:
                # Keep the end marker for any async consumer
                self._queue.put_nowait(None)
                return out
            out.append(item)

    def __aiter__(self) -> "QueueSubscriber":
        return self

    async def __anext__(self) -> Frame:
        item = await self._queue.get()
        if item is None:
            self._queue.put_nowait(None)
            raise StopAsyncIteration
        return item


@dataclass
class _Channel:
    key: str
    buffer: Deque[Frame]
    opened_at: float
    subscribers: List[Subscriber] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)
    seq: int = 0
    closed_at: Optional[float] = None


class ChannelRegistry:
    def __init__(
        self,
        *,
        buffer_size: int = 500,
        grace_seconds: float = 300.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self._buffer_size = buffer_size
        self._grace_seconds = grace_seconds
        self._clock = clock or time.monotonic
        self._channels: Dict[str, _Channel] = {}

    def _get(self, key: str) -> _Channel:
        channel = self._channels.get(key)
        if channel is None:
            raise NotFound("Channel", key)
        return channel

    def __contains__(self, key: str) -> bool:
        return key in self._channels

    def keys(self) -> List[str]:
        return list(self._channels)

    def open(self, key: str) -> None:
        if key in self._channels:
            return
        channel = _Channel(key=key, buffer=deque(maxlen=self._buffer_size), opened_at=self._clock())
        if self._channels.setdefault(key, channel) is channel:
            logger.info("channel_opened key=%s", key)

    def is_open(self, key: str) -> bool:
        channel = self._channels.get(key)
        return channel is not None and channel.closed_at is None

    def subscribe(self, key: str, subscriber: Subscriber) -> None:
        """Register ``subscriber`` and replay the retained frames to it.

        On a closed channel the replay is followed by ``end()`` and nothing
        is registered.
        """
        channel = self._get(key)
        with channel.lock:
            try:
                for frame in channel.buffer:
                    subscriber.deliver(frame)
                if channel.closed_at is not None:
                    subscriber.end()
                    return
            except Exception:
                logger.warning("channel_replay_failed key=%s", key, exc_info=True)
                return
            channel.subscribers.append(subscriber)
        CHANNEL_SUBSCRIBERS.inc()
        logger.debug("channel_subscribed key=%s subscribers=%d", key, len(channel.subscribers))

    def unsubscribe(self, key: str, subscriber: Subscriber) -> bool:
        channel = self._channels.get(key)
        if channel is None:
            return False
        with channel.lock:
            try:
                channel.subscribers.remove(subscriber)
            except ValueError:
                return False
        CHANNEL_SUBSCRIBERS.dec()
        return True

    def publish(self, key: str, frame: Frame, *, terminal: Optional[bool] = None) -> Frame:
        """Buffer ``frame`` and deliver it to every subscriber, in order.

        ``success`` and ``job_complete`` frames are terminal; pass
        ``terminal=True`` for an unrecoverable ``error``.
        """
        channel = self._get(key)
        is_terminal = frame.type in TERMINAL_TYPES if terminal is None else terminal
        dropped = 0
        with channel.lock:
            if channel.closed_at is not None:
                raise ChannelClosed(key)
            channel.seq += 1
            stamped = frame.model_copy(update={"seq": channel.seq})
            channel.buffer.append(stamped)
            for subscriber in list(channel.subscribers):
                try:
                    subscriber.deliver(stamped)
                except Exception:
                    # A failing connection counts as dropped
                    logger.warning("channel_delivery_failed key=%s", key, exc_info=True)
                    channel.subscribers.remove(subscriber)
                    dropped += 1
            if is_terminal:
                dropped += self._close_locked(channel)
        FRAMES_PUBLISHED.labels(type=stamped.type).inc()
        if dropped:
            CHANNEL_SUBSCRIBERS.dec(dropped)
        return stamped

    def close(self, key: str) -> bool:
        channel = self._channels.get(key)
        if channel is None:
            return False
        with channel.lock:
            if channel.closed_at is not None:
                return False
            ended = self._close_locked(channel)
        if ended:
            CHANNEL_SUBSCRIBERS.dec(ended)
        return True

    def _close_locked(self, channel: _Channel) -> int:
        channel.closed_at = self._clock()
        subscribers = list(channel.subscribers)
        channel.subscribers.clear()
        for subscriber in subscribers:
            try:
                subscriber.end()
            except Exception:
                logger.warning("channel_end_failed key=%s", channel.key, exc_info=True)
        logger.info("channel_closed key=%s frames=%d", channel.key, channel.seq)
        return len(subscribers)

    def frames(self, key: str) -> List[Frame]:
        channel = self._get(key)
        with channel.lock:
            return list(channel.buffer)

    def last_frame(self, key: str) -> Optional[Frame]:
        channel = self._channels.get(key)
        if channel is None:
            return None
        with channel.lock:
            return channel.buffer[-1] if channel.buffer else None

    def subscriber_count(self, key: str) -> int:
        channel = self._channels.get(key)
        return len(channel.subscribers) if channel else 0

    def discard(self, key: str) -> bool:
        channel = self._channels.pop(key, None)
        if channel is None:
            return False
        if channel.closed_at is None:
            with channel.lock:
                ended = self._close_locked(channel)
            if ended:
                CHANNEL_SUBSCRIBERS.dec(ended)
        return True

    def discard_expired(self) -> int:
        """Drop closed channels whose grace period has elapsed."""
        now = self._clock()
        removed = 0
        for key, channel in list(self._channels.items()):
            if channel.closed_at is None:
                continue
            if now - channel.closed_at >= self._grace_seconds:
                if self._channels.get(key) is channel:
                    del self._channels[key]
                    removed += 1
        if removed:
            logger.info("channels_discarded count=%d", removed)
        return removed
