from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from ..infrastructure.session_store import SessionStore
from .generation_coordinator import GenerationSessionCoordinator
from .realtime_channel import ChannelRegistry
from .telemetry_sink import TelemetrySink

logger = logging.getLogger("skillup.cleanup")


@dataclass
class SweepReport:
    sessions_evicted: int = 0
    jobs_pruned: int = 0
    channels_discarded: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class SessionLifecycleCleaner:
    """Evicts expired sessions, finished jobs and stale channel buffers."""

    def __init__(
        self,
        store: SessionStore,
        coordinator: GenerationSessionCoordinator,
        channels: ChannelRegistry,
        *,
        interval_seconds: float = 60.0,
        telemetry: Optional[TelemetrySink] = None,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._channels = channels
        self._interval = interval_seconds
        self._telemetry = telemetry or TelemetrySink()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self) -> SweepReport:
        report = SweepReport(
            sessions_evicted=await self._store.sweep_expired(),
            jobs_pruned=self._coordinator.prune_finished(),
            channels_discarded=self._channels.discard_expired(),
        )
        if report.sessions_evicted or report.jobs_pruned or report.channels_discarded:
            logger.info(
                "cleanup_sweep sessions=%d jobs=%d channels=%d",
                report.sessions_evicted,
                report.jobs_pruned,
                report.channels_discarded,
            )
        self._telemetry.metric("active_sessions", float(self._store.count()))
        return report

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("cleanup_sweep_failed")

    def start(self) -> bool:
        """Start the periodic sweep on the running loop; no-op when disabled."""
        if self._interval <= 0 or self.running:
            return False
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="skillup-cleanup")
        logger.info("cleanup_started interval_s=%s", self._interval)
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("cleanup_stopped")
