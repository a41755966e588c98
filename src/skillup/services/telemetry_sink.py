from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

_logger = logging.getLogger("skillup.telemetry")
_metric_logger = logging.getLogger("skillup.metrics")


@dataclass
class TelemetryEvent:
    name: str
    properties: Dict[str, Any] = field(default_factory=dict)
    actor: str | None = None


class TelemetrySink:
    """Logs chat and generation events and keeps the most recent ones for diagnostics."""

    def __init__(self, max_events: int = 200) -> None:
        self._events: Deque[TelemetryEvent] = deque(maxlen=max_events)

    def record(self, name: str, *, actor: Optional[str] = None, **properties: Any) -> TelemetryEvent:
        event = TelemetryEvent(name=name, properties=properties, actor=actor)
        self._events.append(event)
        try:
            _logger.info(
                "telemetry_event %s",
                name,
                extra={
                    "telemetry_name": name,
                    "telemetry_actor": actor,
                    "telemetry_properties": properties,
                },
            )
        except Exception:
            # Logging failures should not surface to callers
            pass
        return event

    def recent(self, limit: int = 50) -> List[TelemetryEvent]:
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def clear(self) -> None:
        self._events.clear()

    def metric(self, name: str, value: float, *, metric_type: str = "gauge", **properties: Any) -> None:
        """Emit a metric event; ``metric_type`` is "gauge", "counter" or "gauge_delta"."""
        payload = {
            "metric_name": name,
            "metric_value": value,
            "metric_properties": properties,
            "metric_type": metric_type,
        }
        try:
            _metric_logger.info("metric_event %s=%s", name, value, extra=payload)
        except Exception:
            pass
