"""Mirror of job lifecycle events to Redis pub/sub.

This is the cross-instance extension point: other processes can listen on
``skillup.events.<event_type>``. Frames themselves are only fanned out
in-process.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

try:  # pragma: no cover - optional dependency
    import redis  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    redis = None  # type: ignore

logger = logging.getLogger("skillup.events")

CHANNEL_PREFIX = "skillup.events."


class RedisPublisher:
    def __init__(self, url: str) -> None:
        self._url = url
        self._client = None
        self._connect()

    def _connect(self) -> None:
        if redis is None:
            return
        try:
            self._client = redis.Redis.from_url(self._url, socket_timeout=0.5)
            self._client.ping()
        except Exception:
            logger.warning("redis_connect_failed url=%s", self._url)
            self._client = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        if not self._client:
            self._connect()
        if not self._client:
            return False
        try:
            self._client.publish(channel, json.dumps(payload, default=str))
            return True
        except Exception:
            logger.warning("redis_publish_failed channel=%s", channel)
            self._client = None
            return False


class EventBus:
    """Best-effort lifecycle event sink; a no-op when no Redis URL is configured."""

    def __init__(self, publisher: Optional[RedisPublisher] = None) -> None:
        self._publisher = publisher

    @classmethod
    def from_url(cls, url: Optional[str]) -> "EventBus":
        if not url:
            return cls(None)
        return cls(RedisPublisher(url))

    @property
    def enabled(self) -> bool:
        return self._publisher is not None

    def publish_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        if not self._publisher:
            return
        self._publisher.publish(f"{CHANNEL_PREFIX}{event_type}", payload)
